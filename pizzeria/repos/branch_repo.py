# pizzeria/repos/branch_repo.py
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pizzeria.exceptions import NotFoundError
from pizzeria.models import Branch

BRANCH_FIELDS = ("name", "address", "phone", "active", "latitude", "longitude")


class BranchRepo:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_branches(self, active_only: bool = False) -> list[Branch]:
        query = select(Branch).order_by(Branch.name)
        if active_only:
            query = query.where(Branch.active.is_(True))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_branch(self, branch_id: str) -> Optional[Branch]:
        return await self.db.get(Branch, branch_id)

    async def require_branch(self, branch_id: str) -> Branch:
        branch = await self.get_branch(branch_id)
        if branch is None:
            raise NotFoundError(f"Branch {branch_id} not found")
        return branch

    async def create_branch(self, branch: Branch) -> Branch:
        self.db.add(branch)
        await self.db.commit()
        await self.db.refresh(branch)
        return branch

    async def update_branch(self, branch_id: str, **changes) -> Branch:
        branch = await self.require_branch(branch_id)
        for field in BRANCH_FIELDS:
            if field in changes:
                setattr(branch, field, changes[field])
        await self.db.commit()
        await self.db.refresh(branch)
        return branch

    async def delete_branch(self, branch_id: str) -> bool:
        branch = await self.get_branch(branch_id)
        if branch is None:
            return False
        await self.db.delete(branch)
        await self.db.commit()
        return True

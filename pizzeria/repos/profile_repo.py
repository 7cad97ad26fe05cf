# pizzeria/repos/profile_repo.py
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from pizzeria.models import UserProfile


class ProfileRepo:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_profile(self, uid: str) -> Optional[UserProfile]:
        return await self.db.get(UserProfile, uid)

    async def upsert_profile(self, uid: str, name: str, phone: str, address: str) -> UserProfile:
        profile = await self.get_profile(uid)
        if profile is None:
            profile = UserProfile(uid=uid)
            self.db.add(profile)
        profile.name = name
        profile.phone = phone
        profile.address = address
        await self.db.commit()
        await self.db.refresh(profile)
        return profile

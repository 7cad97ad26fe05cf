"""
Primary Database Repositories

Thin async pass-through classes over the primary database. Each takes an
AsyncSession and commits its own writes.
"""

from pizzeria.repos.branch_repo import BranchRepo
from pizzeria.repos.menu_repo import MenuRepo
from pizzeria.repos.order_repo import OrderRepo
from pizzeria.repos.profile_repo import ProfileRepo

__all__ = ["BranchRepo", "MenuRepo", "OrderRepo", "ProfileRepo"]

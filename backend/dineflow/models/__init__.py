"""Database models for the order service."""

from .base import Base, init_db, make_engine, make_sessionmaker
from .order import OrderRecord
from .staff import RestaurantRecord, StaffRecord

__all__ = [
    "Base",
    "init_db",
    "make_engine",
    "make_sessionmaker",
    "OrderRecord",
    "RestaurantRecord",
    "StaffRecord",
]

"""Explicit per-request session context."""

from dataclasses import dataclass
from typing import Optional

from .entities import StaffRole


@dataclass(frozen=True)
class SessionContext:
    """Who is acting, and for which restaurant.

    Passed into every orchestrator operation; nothing is read from ambient
    session storage.
    """

    restaurant_id: str
    staff_id: Optional[str] = None
    role: Optional[StaffRole] = None

    @property
    def actor(self) -> str:
        if self.staff_id is None:
            return "customer"
        role = self.role.value if self.role else "staff"
        return f"{role}:{self.staff_id}"

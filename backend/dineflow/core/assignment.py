"""Least-busy cook and waiter assignment for the line items of a new order."""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Union

import numpy as np

from .entities import CartItem, LineItem, new_id


@dataclass
class AssignmentPlan:
    """Assigned items plus the loads they leave behind."""

    items: List[LineItem]
    cook_load: Dict[str, int] = field(default_factory=dict)
    waiter_load: Dict[str, int] = field(default_factory=dict)

    def assigned_per_cook(self) -> Dict[str, int]:
        return _count(item.assigned_cook_id for item in self.items)

    def assigned_per_waiter(self) -> Dict[str, int]:
        return _count(item.assigned_waiter_id for item in self.items)


class _LoadVector:
    """Working copy of one role's load, in enumeration order."""

    def __init__(self, load: Mapping[str, int]):
        self.staff_ids = list(load.keys())
        self.counts = np.array([load[sid] for sid in self.staff_ids], dtype=np.int64)

    def take_least_busy(self) -> Optional[str]:
        if not self.staff_ids:
            return None
        # argmin returns the first minimum, which is the enumeration tie-break
        idx = int(np.argmin(self.counts))
        self.counts[idx] += 1
        return self.staff_ids[idx]

    def as_dict(self) -> Dict[str, int]:
        return {sid: int(c) for sid, c in zip(self.staff_ids, self.counts)}


class AssignmentPlanner:
    """
    Greedy streaming load balancer.

    Items are processed left to right. Each item goes to the cook with the
    lowest current count and, independently, to the waiter with the lowest
    current count; the chosen counts are bumped before the next item so the
    order spreads across staff. If loads start within one of each other
    they end within one of each other.

    A role with no active staff leaves that assignment as None. The planner
    never raises and never touches the caller's mappings.
    """

    def plan(
        self,
        items: Sequence[Union[CartItem, LineItem]],
        cook_load: Mapping[str, int],
        waiter_load: Mapping[str, int],
    ) -> AssignmentPlan:
        cooks = _LoadVector(cook_load)
        waiters = _LoadVector(waiter_load)

        assigned: List[LineItem] = []
        for item in items:
            assigned.append(
                LineItem(
                    line_id=getattr(item, "line_id", None) or new_id(),
                    dish_id=item.dish_id,
                    name=item.name,
                    quantity=item.quantity,
                    price=item.price,
                    assigned_cook_id=cooks.take_least_busy(),
                    assigned_waiter_id=waiters.take_least_busy(),
                )
            )

        return AssignmentPlan(
            items=assigned,
            cook_load=cooks.as_dict(),
            waiter_load=waiters.as_dict(),
        )

    def assign(
        self,
        items: Sequence[Union[CartItem, LineItem]],
        cook_load: Mapping[str, int],
        waiter_load: Mapping[str, int],
    ) -> List[LineItem]:
        """Assign a cook and a waiter to every item."""
        return self.plan(items, cook_load, waiter_load).items


def _count(staff_ids) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for sid in staff_ids:
        if sid is not None:
            counts[sid] = counts.get(sid, 0) + 1
    return counts

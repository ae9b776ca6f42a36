"""Core order engine modules."""

from .assignment import AssignmentPlan, AssignmentPlanner
from .context import SessionContext
from .entities import CartItem, CustomerInfo, LineItem, Order, OrderDraft, Staff, StaffRole
from .state_machine import (
    CookStatus,
    ItemStateMachine,
    OrderStateMachine,
    OrderStatus,
    WaiterStatus,
)
from .workload import StaffWorkloadIndex, WorkloadSnapshot

__all__ = [
    "AssignmentPlan",
    "AssignmentPlanner",
    "SessionContext",
    "CartItem",
    "CustomerInfo",
    "LineItem",
    "Order",
    "OrderDraft",
    "Staff",
    "StaffRole",
    "CookStatus",
    "ItemStateMachine",
    "OrderStateMachine",
    "OrderStatus",
    "WaiterStatus",
    "StaffWorkloadIndex",
    "WorkloadSnapshot",
]

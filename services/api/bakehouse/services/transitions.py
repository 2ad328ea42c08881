"""Status state machines for batches and orders.

Status values are stored as plain strings; every change goes through
``ensure_batch_transition`` / ``ensure_order_transition`` so that no caller
can jump a record into an arbitrary status.
"""

from enum import Enum

from ..exceptions import IllegalTransition, ValidationFailed


class BatchStatus(str, Enum):
    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class OrderStatus(str, Enum):
    NEW = "new"
    APPROVED = "approved"
    BAKING = "baking"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    CANCELLED = "cancelled"
    FAILED = "failed"


BATCH_TRANSITIONS: dict[BatchStatus, frozenset[BatchStatus]] = {
    BatchStatus.PLANNED: frozenset({BatchStatus.IN_PROGRESS, BatchStatus.COMPLETED, BatchStatus.CANCELLED}),
    BatchStatus.IN_PROGRESS: frozenset({BatchStatus.COMPLETED}),
    BatchStatus.COMPLETED: frozenset(),
    BatchStatus.CANCELLED: frozenset(),
}

ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.NEW: frozenset({OrderStatus.APPROVED, OrderStatus.CANCELLED}),
    OrderStatus.APPROVED: frozenset({OrderStatus.BAKING, OrderStatus.CANCELLED}),
    OrderStatus.BAKING: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def parse_batch_status(value: str) -> BatchStatus:
    try:
        return BatchStatus(value)
    except ValueError:
        raise ValidationFailed(f"Unknown batch status: {value}")


def parse_order_status(value: str) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise ValidationFailed(f"Unknown order status: {value}")


def ensure_batch_transition(current: str, target: BatchStatus) -> bool:
    """Return True if the batch must move, False if it is already there.

    Raises IllegalTransition for moves the state machine does not allow.
    """
    current_status = parse_batch_status(current)
    if current_status == target:
        return False
    if target not in BATCH_TRANSITIONS[current_status]:
        raise IllegalTransition("batch", current_status.value, target.value)
    return True


def ensure_order_transition(current: str, target: OrderStatus) -> bool:
    """Same contract as ``ensure_batch_transition`` for orders."""
    current_status = parse_order_status(current)
    if current_status == target:
        return False
    if target not in ORDER_TRANSITIONS[current_status]:
        raise IllegalTransition("order", current_status.value, target.value)
    return True

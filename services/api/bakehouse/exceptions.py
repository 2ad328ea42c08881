"""Service layer exceptions for the bakehouse API.

Services raise these; ``main.py`` maps them onto HTTP responses so routers do
not have to translate every failure by hand.

Exception Hierarchy:
    ServiceError
    ├── NotFoundError
    ├── ValidationFailed
    ├── InsufficientStock
    ├── IllegalTransition
    ├── ProductInUse
    └── PaymentError
"""

from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Optional


class ServiceError(Exception):
    """Base exception for all service layer errors."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_detail(self):
        return self.message


class NotFoundError(ServiceError):
    """Raised when an entity cannot be found by ID."""

    status_code = 404

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class ValidationFailed(ServiceError):
    """Raised for requests that reference missing/inactive records or break a rule."""

    status_code = 400


@dataclass
class Shortage:
    ingredient_id: str
    name: str
    unit: str
    required: Decimal
    on_hand: Decimal

    @property
    def shortfall(self) -> Decimal:
        return self.required - self.on_hand

    def as_dict(self) -> dict:
        data = asdict(self)
        data["shortfall"] = self.shortfall
        return {k: str(v) if isinstance(v, Decimal) else v for k, v in data.items()}


class InsufficientStock(ServiceError):
    """Raised when one or more ingredients cannot cover a deduction.

    Carries every short ingredient, not only the first one found, so the
    admin can restock in one pass.
    """

    status_code = 409

    def __init__(self, shortages: list[Shortage]):
        self.shortages = shortages
        parts = [
            f"{s.name}: need {s.required} {s.unit}, have {s.on_hand} (short {s.shortfall})"
            for s in shortages
        ]
        super().__init__("Insufficient stock - " + "; ".join(parts))

    def to_detail(self):
        return {
            "message": "Insufficient stock",
            "shortages": [s.as_dict() for s in self.shortages],
        }


class IllegalTransition(ServiceError):
    """Raised when a status change is not allowed from the current status."""

    status_code = 409

    def __init__(self, entity: str, current: str, target: str):
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(f"Cannot move {entity} from '{current}' to '{target}'")


class PaymentError(ServiceError):
    """Raised when the payment processor rejects or fails an operation."""

    status_code = 400

    def __init__(self, message: str, processor_message: Optional[str] = None):
        self.processor_message = processor_message
        super().__init__(message)

    def to_detail(self):
        return {"message": self.message, "error": self.processor_message}


class ProductInUse(ServiceError):
    """Raised when deleting a product that orders, batches or stock refer to.

    Args:
        product_id: The product being deleted
        dependencies: Dependency counts, e.g. {"order items": 3, "batch items": 1}
    """

    status_code = 409

    def __init__(self, product_id: str, dependencies: dict):
        self.product_id = product_id
        self.dependencies = dependencies
        details = ", ".join(
            f"{count} {entity_type}" for entity_type, count in dependencies.items() if count > 0
        )
        super().__init__(f"Cannot delete product {product_id}: used in {details}")

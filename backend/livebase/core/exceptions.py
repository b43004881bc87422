"""Domain exceptions for the stock reconciliation core.

Each exception carries a human-readable message and the HTTP status an outer
layer should map it to.
"""

from typing import Any, Dict, Optional


class LivebaseError(Exception):
    """Base exception for the stock core."""

    status_code = 500

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context: Dict[str, Any] = context
        super().__init__(message)


class NotFoundError(LivebaseError):
    """Referenced entity is missing or does not belong to the base."""

    status_code = 404

    def __init__(self, entity: str, identifier: Any, base_id: Optional[int] = None):
        self.entity = entity
        self.identifier = identifier
        self.base_id = base_id
        if base_id is None:
            message = f"{entity} '{identifier}' not found"
        else:
            message = f"{entity} '{identifier}' not found or does not belong to base {base_id}"
        super().__init__(message, entity=entity, identifier=identifier, base_id=base_id)


class DomainValidationError(LivebaseError):
    """Business rule or input validation failure."""

    status_code = 400


class ClosingExceedsOpeningError(DomainValidationError):
    """Closing balance is larger than the opening balance."""

    def __init__(self, opening: str, closing: str):
        self.opening = opening
        self.closing = closing
        super().__init__(
            f"Closing stock ({closing}) cannot exceed opening stock ({opening}); "
            "consumption cannot be negative",
            opening=opening,
            closing=closing,
        )


class ArrivalExceedsOrderError(DomainValidationError):
    """Arrival would push the cumulative received quantity over the ordered quantity."""

    def __init__(self, ordered: str, received: str, requested: str, remaining: str):
        self.ordered = ordered
        self.received = received
        self.requested = requested
        self.remaining = remaining
        super().__init__(
            f"Arrival of {requested} exceeds the purchase order: ordered {ordered}, "
            f"already received {received}, at most {remaining} remaining",
            ordered=ordered,
            received=received,
            requested=requested,
            remaining=remaining,
        )


class DuplicateConsumptionError(DomainValidationError):
    """A consumption already exists for the same date, goods, location and handler."""

    def __init__(self, consumption_date: Any, goods_id: str, location_id: int, handler_id: str):
        super().__init__(
            f"A consumption record for goods '{goods_id}' at location {location_id} "
            f"by handler '{handler_id}' on {consumption_date} already exists",
            consumption_date=consumption_date,
            goods_id=goods_id,
            location_id=location_id,
            handler_id=handler_id,
        )


class ConsumptionInUseError(DomainValidationError):
    """Consumption is referenced by an anchor profit record."""

    def __init__(self, record_id: str, profit_id: str):
        super().__init__(
            f"Consumption record '{record_id}' is linked to anchor profit record "
            f"'{profit_id}'; delete the profit record first",
            record_id=record_id,
            profit_id=profit_id,
        )


class PersistenceError(LivebaseError):
    """Wraps a database failure after rollback."""

    status_code = 500

    def __init__(self, operation: str, **context: Any):
        self.operation = operation
        super().__init__(f"Database error during {operation}", operation=operation, **context)

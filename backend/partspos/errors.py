"""
Domain errors raised by the ledger engine.

Every error carries a human-readable message plus a ``details`` dict that
routes return verbatim. Services raise; they never swallow.
"""

from __future__ import annotations


class DomainError(Exception):
    """Base class for business-rule failures surfaced to callers."""

    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(DomainError):
    """A referenced product, lot, document, customer or payment does not exist."""

    http_status = 404

    def __init__(self, entity: str, entity_id):
        super().__init__(
            f"{entity} {entity_id} not found",
            details={"entity": entity, "id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


class InsufficientStockError(DomainError):
    """Requested quantity exceeds product or lot stock. Nothing was written."""

    http_status = 409

    def __init__(
        self,
        *,
        product_id: int,
        requested: int,
        available: int,
        lot_id: int | None = None,
    ):
        shortfall = requested - available
        if lot_id is None:
            message = (
                f"Insufficient stock for product {product_id}. "
                f"Requested: {requested}, Available: {available}, Short: {shortfall}"
            )
        else:
            message = (
                f"Insufficient stock in lot {lot_id} of product {product_id}. "
                f"Requested: {requested}, Available: {available}, Short: {shortfall}"
            )
        super().__init__(
            message,
            details={
                "product_id": product_id,
                "lot_id": lot_id,
                "requested": requested,
                "available": available,
                "shortfall": shortfall,
            },
        )
        self.product_id = product_id
        self.lot_id = lot_id
        self.requested = requested
        self.available = available
        self.shortfall = shortfall


class ConflictRetryExhausted(DomainError):
    """
    The database kept reporting concurrent writers after every retry.

    Callers should restart the whole user action, not resubmit a stale result.
    """

    http_status = 409


class LifecycleError(DomainError):
    """Illegal status transition, or an edit of a terminal document."""

    http_status = 409

"""Exception taxonomy for the quote pricing engine."""
from typing import Iterable, Optional


class QuoteEngineError(Exception):
    """Base class for every error raised by the pricing and lifecycle engines."""


class CatalogLoadError(QuoteEngineError):
    """
    Raised when any catalog table read fails.

    The catalog index is left empty; callers must not attempt catalog-mode
    pricing until a reload succeeds.
    """
    def __init__(self, team_id: str, table: str, cause: Optional[BaseException] = None):
        self.team_id = team_id
        self.table = table
        self.cause = cause
        super().__init__(
            f"CATALOG_LOAD_FAILED: could not read '{table}' for team {team_id}"
            + (f" ({cause})" if cause else "")
        )


class InvalidPriceError(QuoteEngineError):
    def __init__(self, price):
        self.price = price
        super().__init__(f"Unit price must be >= 0, got {price!r}")


class InvalidQuantityError(QuoteEngineError):
    def __init__(self, quantity):
        self.quantity = quantity
        super().__init__(f"Quantity must be an integer >= 1, got {quantity!r}")


class InvalidMethodError(QuoteEngineError):
    """Raised for a method selection that the chosen kind/model does not offer, or a count below 1."""
    def __init__(self, method_id: str, reason: str):
        self.method_id = method_id
        self.reason = reason
        super().__init__(f"Invalid method selection {method_id!r}: {reason}")


class InvalidStatusError(QuoteEngineError):
    def __init__(self, status, allowed: Iterable[str] = ()):
        self.status = status
        self.allowed = list(allowed)
        super().__init__(
            f"Unknown quote status {status!r}; expected one of {', '.join(self.allowed)}"
        )


class ItemNotFoundError(QuoteEngineError):
    def __init__(self, item_id: str, quote_id: Optional[str] = None):
        self.item_id = item_id
        self.quote_id = quote_id
        where = f" in quote {quote_id}" if quote_id else ""
        super().__init__(f"Quote item {item_id}{where} not found")


class QuoteNotFoundError(QuoteEngineError):
    def __init__(self, quote_id: str):
        self.quote_id = quote_id
        super().__init__(f"Quote {quote_id} not found")

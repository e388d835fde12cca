from __future__ import annotations


class StockTrackerError(Exception):
    """Base class for price tracker domain errors."""


class StockNotFoundError(StockTrackerError, LookupError):
    def __init__(self, symbol: str) -> None:
        super().__init__("STOCK_NOT_FOUND")
        self.symbol = symbol


class StockValidationError(StockTrackerError, ValueError):
    pass

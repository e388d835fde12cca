from __future__ import annotations

import logging
import threading
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Callable

from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from stocktracker.db.models import StockRecord
from stocktracker.errors import StockNotFoundError, StockValidationError
from stocktracker.schemas.stock import StockPriceSnapshot

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
PRICE_FLOOR = Decimal("1.00")


def normalize_symbol(symbol: str) -> str:
    return str(symbol).strip().upper()


def to_money(value: Decimal | float | int | str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise StockValidationError(f"invalid price: {value!r}") from exc
    if not amount.is_finite():
        raise StockValidationError(f"price must be finite: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def to_listed_price(value: Decimal | float | int | str) -> Decimal:
    price = to_money(value)
    if price < PRICE_FLOOR:
        raise StockValidationError(f"price must be at least {PRICE_FLOOR}: {value!r}")
    return price


def compute_change(new_price: Decimal, previous_close: Decimal) -> tuple[Decimal, Decimal]:
    """Return (change_amount, change_percentage) of new_price against previous_close."""
    amount = new_price - previous_close
    if previous_close == 0:
        return amount, Decimal("0.00")
    pct = (amount / previous_close * HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)
    return amount, pct


class PriceStore:
    """Authoritative quote catalog backed by the `stocks` table.

    Every session runs under one re-entrant lock, so read-modify-write on a
    symbol never interleaves and readers never see a half-applied update.
    Callers only ever receive detached `StockPriceSnapshot` copies.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or datetime.now
        self._lock = threading.RLock()

    @staticmethod
    def _snapshot(row: StockRecord) -> StockPriceSnapshot:
        return StockPriceSnapshot.model_validate(row)

    @staticmethod
    def _find(session: Session, symbol: str) -> StockRecord | None:
        return session.scalars(select(StockRecord).where(StockRecord.symbol == symbol)).one_or_none()

    def _query(self, stmt) -> list[StockPriceSnapshot]:
        with self._lock, self._session_factory() as session:
            return [self._snapshot(row) for row in session.scalars(stmt)]

    def list_all(self) -> list[StockPriceSnapshot]:
        return self._query(
            select(StockRecord).order_by(StockRecord.last_updated.desc(), StockRecord.id.desc())
        )

    def top_gainers(self) -> list[StockPriceSnapshot]:
        return self._query(
            select(StockRecord)
            .where(StockRecord.change_percentage > 0)
            .order_by(StockRecord.change_percentage.desc(), StockRecord.symbol)
        )

    def top_losers(self) -> list[StockPriceSnapshot]:
        return self._query(
            select(StockRecord)
            .where(StockRecord.change_percentage < 0)
            .order_by(StockRecord.change_percentage.asc(), StockRecord.symbol)
        )

    def count(self) -> int:
        with self._lock, self._session_factory() as session:
            return int(session.scalar(select(func.count()).select_from(StockRecord)) or 0)

    def get_by_symbol(self, symbol: str) -> StockPriceSnapshot | None:
        with self._lock, self._session_factory() as session:
            row = self._find(session, normalize_symbol(symbol))
            return self._snapshot(row) if row is not None else None

    def require(self, symbol: str) -> StockPriceSnapshot:
        snapshot = self.get_by_symbol(symbol)
        if snapshot is None:
            raise StockNotFoundError(normalize_symbol(symbol))
        return snapshot

    def create_if_absent(
        self,
        symbol: str,
        company_name: str,
        initial_price: Decimal | float | str,
    ) -> StockPriceSnapshot:
        key = normalize_symbol(symbol)
        name = str(company_name).strip()
        if not key:
            raise StockValidationError("symbol must not be blank")
        if not name:
            raise StockValidationError("company_name must not be blank")
        price = to_listed_price(initial_price)

        with self._lock, self._session_factory() as session:
            existing = self._find(session, key)
            if existing is not None:
                return self._snapshot(existing)

            row = StockRecord(
                symbol=key,
                company_name=name,
                current_price=price,
                previous_close=price,
                change_amount=Decimal("0.00"),
                change_percentage=Decimal("0.00"),
                day_high=price,
                day_low=price,
                volume=0,
                last_updated=self._clock(),
            )
            session.add(row)
            session.commit()
            return self._snapshot(row)

    def apply_price_update(self, symbol: str, new_price: Decimal | float | str) -> StockPriceSnapshot:
        key = normalize_symbol(symbol)
        price = to_listed_price(new_price)

        with self._lock, self._session_factory() as session:
            row = self._find(session, key)
            if row is None:
                raise StockNotFoundError(key)

            try:
                reference = row.previous_close if row.previous_close is not None else row.current_price
                amount, pct = compute_change(price, reference)

                row.current_price = price
                row.change_amount = amount
                row.change_percentage = pct
                if row.day_high is None or price > row.day_high:
                    row.day_high = price
                if row.day_low is None or price < row.day_low:
                    row.day_low = price
                row.last_updated = self._clock()
                session.commit()
            except Exception:
                session.rollback()
                raise

            logger.info("[STORE][price_update] symbol=%s price=%s change_pct=%s", key, price, pct)
            return self._snapshot(row)

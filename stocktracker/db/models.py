from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, DateTime, Integer, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class StockRecord(Base):
    __tablename__ = "stocks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    symbol: Mapped[str] = mapped_column(String(16), unique=True, nullable=False, index=True)
    company_name: Mapped[str] = mapped_column(String(128), nullable=False)
    current_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    previous_close: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    change_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    change_percentage: Mapped[Decimal | None] = mapped_column(Numeric(7, 2), nullable=True)
    day_high: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    day_low: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    volume: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_updated: Mapped[datetime] = mapped_column(DateTime, nullable=False)

from datetime import datetime
from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, ConfigDict, PlainSerializer

Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class StockPriceSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    symbol: str
    company_name: str
    current_price: Money
    previous_close: Money | None = None
    change_amount: Money | None = None
    change_percentage: Money | None = None
    last_updated: datetime
    day_high: Money | None = None
    day_low: Money | None = None
    volume: int = 0

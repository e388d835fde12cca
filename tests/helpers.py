from datetime import datetime, timedelta

from stocktracker.db.session import build_engine, build_session_factory, create_schema
from stocktracker.services.price_store import PriceStore


class TickingClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 2, 9, 0, 0)

    def __call__(self) -> datetime:
        self.now = self.now + timedelta(seconds=1)
        return self.now


def make_store(clock=None) -> PriceStore:
    engine = build_engine("sqlite+pysqlite:///:memory:")
    create_schema(engine)
    return PriceStore(build_session_factory(engine), clock=clock or TickingClock())


class RecordingPublisher:
    def __init__(self) -> None:
        self.events: list[tuple[str, object]] = []

    def publish(self, topic: str, payload) -> int:
        self.events.append((topic, payload))
        return 1

from __future__ import annotations

import logging
import random
import threading
import time
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

from stocktracker.errors import StockNotFoundError
from stocktracker.schemas.stock import StockPriceSnapshot
from stocktracker.services.broadcast import STOCK_UPDATES_TOPIC
from stocktracker.services.price_store import CENT, PRICE_FLOOR, PriceStore

logger = logging.getLogger(__name__)

MAX_DELTA = 0.05

SEED_STOCKS: tuple[tuple[str, str, str], ...] = (
    ("AAPL", "Apple Inc.", "150.00"),
    ("GOOGL", "Alphabet Inc.", "2800.00"),
    ("MSFT", "Microsoft Corporation", "330.00"),
    ("AMZN", "Amazon.com Inc.", "3200.00"),
    ("TSLA", "Tesla Inc.", "800.00"),
    ("META", "Meta Platforms Inc.", "320.00"),
    ("NVDA", "NVIDIA Corporation", "450.00"),
    ("NFLX", "Netflix Inc.", "400.00"),
    ("AMD", "Advanced Micro Devices", "110.00"),
    ("ORCL", "Oracle Corporation", "85.00"),
)


class Publisher(Protocol):
    def publish(self, topic: str, payload: StockPriceSnapshot) -> object: ...


def compute_next_price(current_price: Decimal, delta: float) -> Decimal:
    """Apply a fractional move to current_price, rounded to cents, floored at 1.00."""
    raw = (current_price * (Decimal(1) + Decimal(str(delta)))).quantize(CENT, rounding=ROUND_HALF_UP)
    if raw < PRICE_FLOOR:
        return PRICE_FLOOR
    return raw


def pick_update_count(catalog_size: int, rng: random.Random) -> int:
    # uniform on 1..n//2+1
    return max(1, rng.randint(0, catalog_size // 2) + 1)


class StockPriceSimulator:
    def __init__(
        self,
        *,
        store: PriceStore,
        publisher: Publisher,
        seed_stocks: tuple[tuple[str, str, str], ...] = SEED_STOCKS,
        interval_sec: float = 3.0,
        rng: random.Random | None = None,
        topic: str = STOCK_UPDATES_TOPIC,
    ) -> None:
        self.store = store
        self.publisher = publisher
        self.seed_stocks = seed_stocks
        self.interval_sec = interval_sec
        self.rng = rng or random.Random()
        self.topic = topic
        self._run_guard = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._metrics_lock = threading.Lock()
        self._metrics = {
            "runs": 0,
            "failed_runs": 0,
            "skipped_runs": 0,
            "missed_ticks": 0,
            "updates": 0,
            "published": 0,
            "not_found": 0,
            "update_failures": 0,
        }
        self.last_run_at: datetime | None = None

    def _inc(self, key: str, value: int = 1) -> None:
        with self._metrics_lock:
            self._metrics[key] = self._metrics.get(key, 0) + value

    def _seed(self) -> None:
        for symbol, company_name, price in self.seed_stocks:
            if self.store.get_by_symbol(symbol) is not None:
                continue
            self.store.create_if_absent(symbol, company_name, price)
            logger.info("[SIM][seed_created] symbol=%s name=%s", symbol, company_name)

    def _update_one(self, quote: StockPriceSnapshot, result: dict) -> None:
        delta = self.rng.uniform(-MAX_DELTA, MAX_DELTA)
        new_price = compute_next_price(quote.current_price, delta)
        try:
            updated = self.store.apply_price_update(quote.symbol, new_price)
        except StockNotFoundError:
            result["not_found"] += 1
            logger.warning("[SIM][update_not_found] symbol=%s", quote.symbol)
            return
        except Exception as exc:
            result["failed"] += 1
            logger.error("[SIM][update_error] symbol=%s error=%s", quote.symbol, exc)
            return

        result["updated"] += 1
        try:
            self.publisher.publish(self.topic, updated)
        except Exception as exc:
            logger.error("[SIM][publish_error] symbol=%s error=%s", updated.symbol, exc)
            return
        result["published"] += 1
        logger.debug("[SIM][update] symbol=%s price=%s", updated.symbol, updated.current_price)

    def _run(self) -> dict:
        result = {
            "skipped": False,
            "aborted": False,
            "selected": 0,
            "updated": 0,
            "published": 0,
            "not_found": 0,
            "failed": 0,
        }
        try:
            self._seed()
            quotes = self.store.list_all()
        except Exception as exc:
            result["aborted"] = True
            self._inc("failed_runs")
            logger.error("[SIM][run_error] error=%s", exc)
            return result

        if quotes:
            k = pick_update_count(len(quotes), self.rng)
            result["selected"] = k
            for _ in range(k):
                self._update_one(self.rng.choice(quotes), result)

        self._inc("updates", result["updated"])
        self._inc("published", result["published"])
        self._inc("not_found", result["not_found"])
        self._inc("update_failures", result["failed"])
        return result

    def run_once(self) -> dict:
        if not self._run_guard.acquire(blocking=False):
            self._inc("skipped_runs")
            return {"skipped": True}
        try:
            self._inc("runs")
            with self._metrics_lock:
                self.last_run_at = datetime.now()
            return self._run()
        finally:
            self._run_guard.release()

    @property
    def running(self) -> bool:
        return self._run_guard.locked()

    def _loop(self) -> None:
        # tick 0 fires right away so the catalog is seeded at startup
        next_tick = time.monotonic()
        while not self._stop_event.wait(max(0.0, next_tick - time.monotonic())):
            self.run_once()
            next_tick += self.interval_sec
            now = time.monotonic()
            while next_tick <= now:
                next_tick += self.interval_sec
                self._inc("missed_ticks")

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name="price-simulation-worker")
        logger.info("[SIM][worker_start] thread=price-simulation-worker interval_sec=%s", self.interval_sec)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("[SIM][worker_stop] thread=price-simulation-worker")

    def is_alive(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def metrics(self) -> dict:
        with self._metrics_lock:
            counters = dict(self._metrics)
            last_run_at = self.last_run_at
        return {
            **counters,
            "running": self.running,
            "worker_alive": self.is_alive(),
            "interval_sec": self.interval_sec,
            "last_run_at": last_run_at.isoformat() if last_run_at else None,
        }

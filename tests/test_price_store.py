import threading
import unittest
from decimal import Decimal

from stocktracker.errors import StockNotFoundError, StockValidationError
from stocktracker.services.price_store import compute_change
from tests.helpers import make_store


class ComputeChangeTest(unittest.TestCase):
    def test_percentage_rounds_half_up_to_two_places(self):
        amount, pct = compute_change(Decimal("100.125"), Decimal("100.00"))
        self.assertEqual(amount, Decimal("0.125"))
        self.assertEqual(pct, Decimal("0.13"))

    def test_zero_previous_close_yields_zero_percentage(self):
        amount, pct = compute_change(Decimal("5.00"), Decimal("0"))
        self.assertEqual(amount, Decimal("5.00"))
        self.assertEqual(pct, Decimal("0.00"))


class PriceStoreTest(unittest.TestCase):
    def setUp(self):
        self.store = make_store()

    def test_create_initializes_quote_state(self):
        row = self.store.create_if_absent("aapl", "Apple Inc.", "150.00")

        self.assertEqual(row.symbol, "AAPL")
        self.assertEqual(row.company_name, "Apple Inc.")
        self.assertEqual(row.current_price, Decimal("150.00"))
        self.assertEqual(row.previous_close, Decimal("150.00"))
        self.assertEqual(row.day_high, Decimal("150.00"))
        self.assertEqual(row.day_low, Decimal("150.00"))
        self.assertEqual(row.change_amount, Decimal("0.00"))
        self.assertEqual(row.change_percentage, Decimal("0.00"))
        self.assertEqual(row.volume, 0)
        self.assertIsNotNone(row.last_updated)

    def test_create_if_absent_is_idempotent(self):
        first = self.store.create_if_absent("AAPL", "Apple Inc.", "150.00")
        second = self.store.create_if_absent("AAPL", "Other Name", "999.00")

        self.assertEqual(second, first)
        self.assertEqual(self.store.count(), 1)
        self.assertEqual(self.store.get_by_symbol("AAPL").current_price, Decimal("150.00"))

    def test_create_rejects_invalid_input(self):
        with self.assertRaises(StockValidationError):
            self.store.create_if_absent("  ", "Blank Inc.", "10.00")
        with self.assertRaises(StockValidationError):
            self.store.create_if_absent("XYZ", "", "10.00")
        with self.assertRaises(StockValidationError):
            self.store.create_if_absent("XYZ", "Zero Inc.", "0")
        self.assertEqual(self.store.count(), 0)

    def test_get_by_symbol_is_case_insensitive(self):
        self.store.create_if_absent("AAPL", "Apple Inc.", "150.00")

        self.assertEqual(self.store.get_by_symbol("aapl"), self.store.get_by_symbol("AAPL"))
        self.assertEqual(self.store.get_by_symbol(" aApL "), self.store.get_by_symbol("AAPL"))
        self.assertIsNone(self.store.get_by_symbol("MSFT"))

    def test_require_raises_not_found(self):
        with self.assertRaises(StockNotFoundError) as ctx:
            self.store.require("nope")
        self.assertEqual(ctx.exception.symbol, "NOPE")

    def test_apply_price_update_recomputes_metrics_and_extrema(self):
        self.store.create_if_absent("AAPL", "Apple Inc.", "150.00")

        up = self.store.apply_price_update("aapl", Decimal("157.50"))
        self.assertEqual(up.current_price, Decimal("157.50"))
        self.assertEqual(up.previous_close, Decimal("150.00"))
        self.assertEqual(up.change_amount, Decimal("7.50"))
        self.assertEqual(up.change_percentage, Decimal("5.00"))
        self.assertEqual(up.day_high, Decimal("157.50"))
        self.assertEqual(up.day_low, Decimal("150.00"))

        down = self.store.apply_price_update("AAPL", Decimal("140.01"))
        self.assertEqual(down.change_amount, Decimal("-9.99"))
        self.assertEqual(down.change_percentage, Decimal("-6.66"))
        self.assertEqual(down.day_high, Decimal("157.50"))
        self.assertEqual(down.day_low, Decimal("140.01"))
        self.assertGreater(down.last_updated, up.last_updated)

        stored = self.store.get_by_symbol("AAPL")
        self.assertEqual(stored, down)

    def test_apply_price_update_holds_invariants_for_many_prices(self):
        self.store.create_if_absent("ORCL", "Oracle Corporation", "85.00")
        for raw in ["1.00", "85.00", "120.37", "3.14", "84.99", "85.01"]:
            price = Decimal(raw)
            row = self.store.apply_price_update("ORCL", price)
            self.assertEqual(row.current_price, price)
            self.assertLessEqual(row.day_low, price)
            self.assertGreaterEqual(row.day_high, price)
            expected, _ = compute_change(price, Decimal("85.00"))
            self.assertEqual(row.change_amount, expected)
            self.assertEqual(
                row.change_percentage,
                ((price - Decimal("85.00")) / Decimal("85.00") * 100).quantize(Decimal("0.01"), rounding="ROUND_HALF_UP"),
            )

    def test_apply_price_update_rejects_price_below_floor(self):
        before = self.store.create_if_absent("AAPL", "Apple Inc.", "150.00")

        for bad in (Decimal("0.50"), Decimal("0.99"), "0", "-5.00"):
            with self.assertRaises(StockValidationError):
                self.store.apply_price_update("AAPL", bad)

        self.assertEqual(self.store.get_by_symbol("AAPL"), before)
        at_floor = self.store.apply_price_update("AAPL", Decimal("1.00"))
        self.assertEqual(at_floor.current_price, Decimal("1.00"))
        self.assertEqual(at_floor.day_low, Decimal("1.00"))

    def test_apply_price_update_rejects_non_numeric_prices(self):
        before = self.store.create_if_absent("AAPL", "Apple Inc.", "150.00")

        for bad in (Decimal("NaN"), float("inf"), float("-inf"), "abc"):
            with self.assertRaises(StockValidationError):
                self.store.apply_price_update("AAPL", bad)

        self.assertEqual(self.store.get_by_symbol("AAPL"), before)

    def test_create_rejects_initial_price_below_floor(self):
        with self.assertRaises(StockValidationError):
            self.store.create_if_absent("PENNY", "Penny Corp", "0.99")
        self.assertIsNone(self.store.get_by_symbol("PENNY"))

        row = self.store.create_if_absent("PENNY", "Penny Corp", "1.00")
        self.assertEqual(row.current_price, Decimal("1.00"))

    def test_apply_price_update_unknown_symbol_raises(self):
        with self.assertRaises(StockNotFoundError):
            self.store.apply_price_update("GHOST", Decimal("10.00"))

    def test_list_all_orders_most_recent_first(self):
        self.store.create_if_absent("AAPL", "Apple Inc.", "150.00")
        self.store.create_if_absent("MSFT", "Microsoft Corporation", "330.00")
        self.store.create_if_absent("AMD", "Advanced Micro Devices", "110.00")
        self.store.apply_price_update("AAPL", Decimal("151.00"))

        symbols = [row.symbol for row in self.store.list_all()]
        self.assertEqual(symbols, ["AAPL", "AMD", "MSFT"])

    def test_gainers_and_losers_partition_catalog(self):
        self.store.create_if_absent("AAPL", "Apple Inc.", "100.00")
        self.store.create_if_absent("MSFT", "Microsoft Corporation", "100.00")
        self.store.create_if_absent("AMD", "Advanced Micro Devices", "100.00")
        self.store.create_if_absent("ORCL", "Oracle Corporation", "100.00")
        self.store.create_if_absent("NFLX", "Netflix Inc.", "100.00")
        self.store.apply_price_update("AAPL", Decimal("103.00"))
        self.store.apply_price_update("MSFT", Decimal("101.00"))
        self.store.apply_price_update("AMD", Decimal("96.00"))
        self.store.apply_price_update("ORCL", Decimal("99.50"))

        gainers = [r.symbol for r in self.store.top_gainers()]
        losers = [r.symbol for r in self.store.top_losers()]
        flat = [r.symbol for r in self.store.list_all() if r.change_percentage == 0]

        self.assertEqual(gainers, ["AAPL", "MSFT"])
        self.assertEqual(losers, ["AMD", "ORCL"])
        self.assertEqual(flat, ["NFLX"])
        self.assertFalse(set(gainers) & set(losers))
        self.assertEqual(
            sorted(gainers + losers + flat),
            sorted(r.symbol for r in self.store.list_all()),
        )

    def test_concurrent_updates_on_same_symbol_keep_invariants(self):
        self.store.create_if_absent("TSLA", "Tesla Inc.", "800.00")
        prices = [Decimal(800 + (i % 41) - 20) for i in range(200)]
        errors: list[Exception] = []

        def worker(chunk):
            try:
                for p in chunk:
                    row = self.store.apply_price_update("TSLA", p)
                    if not (row.day_low <= row.current_price <= row.day_high):
                        raise AssertionError(f"invariant broken: {row}")
            except Exception as exc:  # pragma: no cover
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(prices[i::8],)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(errors, [])
        final = self.store.get_by_symbol("TSLA")
        self.assertLessEqual(final.day_low, final.current_price)
        self.assertLessEqual(final.current_price, final.day_high)
        self.assertEqual(final.day_high, max(prices))
        self.assertEqual(final.day_low, min(prices))
        self.assertEqual(final.change_amount, final.current_price - final.previous_close)


if __name__ == "__main__":
    unittest.main()

import unittest
from decimal import Decimal

from thinking_relay.models import BackendUsage
from thinking_relay.usage import (
    AnswererPricing,
    PriceTable,
    ReasonerPricing,
    UsageWatermark,
    answerer_cost,
    combined_usage,
    format_cost,
    reasoner_cost,
)


class CostFormulaTests(unittest.TestCase):
    def test_reasoner_cost_prices_misses_and_output(self) -> None:
        pricing = ReasonerPricing(
            input_cache_hit_price=Decimal("0.5"),
            input_cache_miss_price=Decimal("1"),
            output_price=Decimal("2"),
        )
        cost = reasoner_cost(1_000_000, 500_000, pricing)
        self.assertEqual(Decimal("2"), cost)
        self.assertEqual("$2.000", format_cost(cost))

    def test_reasoner_cost_blends_cache_hits(self) -> None:
        pricing = ReasonerPricing(
            input_cache_hit_price=Decimal("0.1"),
            input_cache_miss_price=Decimal("1"),
            output_price=Decimal("0"),
        )
        cost = reasoner_cost(1_000_000, 0, pricing, cached_tokens=400_000)
        self.assertEqual(Decimal("0.64"), cost)

    def test_answerer_cost_includes_cache_terms(self) -> None:
        pricing = AnswererPricing(
            input_price=Decimal("3"),
            output_price=Decimal("15"),
            cache_write_price=Decimal("3.75"),
            cache_read_price=Decimal("0.30"),
        )
        plain = answerer_cost(1_000_000, 100_000, pricing)
        self.assertEqual(Decimal("4.5"), plain)

        cached = answerer_cost(
            1_000_000,
            100_000,
            pricing,
            cache_write_tokens=1_000_000,
            cache_read_tokens=1_000_000,
        )
        self.assertEqual(Decimal("8.55"), cached)

    def test_zero_usage_costs_nothing(self) -> None:
        self.assertEqual("$0.000", format_cost(reasoner_cost(0, 0, ReasonerPricing())))
        self.assertEqual("$0.000", format_cost(answerer_cost(0, 0, AnswererPricing())))


class FormatCostTests(unittest.TestCase):
    def test_rounds_half_away_from_zero(self) -> None:
        self.assertEqual("$0.002", format_cost(Decimal("0.0015")))
        self.assertEqual("$0.003", format_cost(Decimal("0.0025")))

    def test_rounds_down_below_half(self) -> None:
        self.assertEqual("$0.001", format_cost(Decimal("0.0014999")))

    def test_always_three_fraction_digits(self) -> None:
        self.assertEqual("$12.500", format_cost(Decimal("12.5")))
        self.assertEqual("$1000.000", format_cost(Decimal("1000")))


class UsageWatermarkTests(unittest.TestCase):
    def test_keeps_fieldwise_maximum(self) -> None:
        mark = UsageWatermark()
        mark.observe(BackendUsage(100, 50, 150))
        mark.observe(BackendUsage(100, 80, 180))
        mark.observe(BackendUsage(90, 80, 170))

        self.assertEqual(BackendUsage(100, 80, 180), mark.snapshot())

    def test_never_sums_snapshots(self) -> None:
        mark = UsageWatermark()
        for _ in range(5):
            mark.observe(BackendUsage(10, 10, 20))
        self.assertEqual(BackendUsage(10, 10, 20), mark.snapshot())

    def test_total_is_at_least_input_plus_output(self) -> None:
        mark = UsageWatermark()
        mark.observe(BackendUsage(input_tokens=7))
        mark.observe(BackendUsage(output_tokens=3))
        self.assertEqual(BackendUsage(7, 3, 10), mark.snapshot())

    def test_unobserved_snapshot_is_zero(self) -> None:
        mark = UsageWatermark()
        self.assertFalse(mark.observed)
        self.assertEqual(BackendUsage(), mark.snapshot())


class CombinedUsageTests(unittest.TestCase):
    def test_total_cost_rounds_the_raw_sum(self) -> None:
        usage = combined_usage(
            BackendUsage(1_000, 500, 1_500),
            BackendUsage(2_000, 300, 2_300),
            PriceTable(),
        )

        # 0.001645 + 0.0105: per-backend rounding would give 0.013
        self.assertEqual("$0.002", usage["reasoner_usage"]["total_cost"])
        self.assertEqual("$0.011", usage["answerer_usage"]["total_cost"])
        self.assertEqual("$0.012", usage["total_cost"])
        self.assertEqual(1_500, usage["reasoner_usage"]["total_tokens"])
        self.assertEqual(300, usage["answerer_usage"]["output_tokens"])


class PriceTableTests(unittest.TestCase):
    def test_from_dict_overrides_only_given_prices(self) -> None:
        table = PriceTable.from_dict({
            "Reasoner": {"OutputPrice": 4.4},
            "Answerer": {"InputPrice": "1.25"},
        })
        self.assertEqual(Decimal("4.4"), table.reasoner.output_price)
        self.assertEqual(Decimal("0.55"), table.reasoner.input_cache_miss_price)
        self.assertEqual(Decimal("1.25"), table.answerer.input_price)
        self.assertEqual(Decimal("15.0"), table.answerer.output_price)

    def test_from_dict_none_gives_defaults(self) -> None:
        self.assertEqual(PriceTable(), PriceTable.from_dict(None))


if __name__ == "__main__":
    unittest.main()

"""Token cost accounting for both backends.

Prices are USD per million tokens. Costs are computed with ``Decimal`` and
rendered to three fractional digits using round-half-away-from-zero
(``ROUND_HALF_UP`` in ``decimal`` terms), so ``0.0015`` renders as ``$0.002``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from thinking_relay.models import BackendUsage

_PER_MILLION = Decimal(1_000_000)
_COST_QUANTUM = Decimal("0.001")


def _dec(value: object) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


@dataclass(frozen=True)
class ReasonerPricing:
    input_cache_hit_price: Decimal = Decimal("0.14")
    input_cache_miss_price: Decimal = Decimal("0.55")
    output_price: Decimal = Decimal("2.19")


@dataclass(frozen=True)
class AnswererPricing:
    input_price: Decimal = Decimal("3.0")
    output_price: Decimal = Decimal("15.0")
    cache_write_price: Decimal = Decimal("3.75")
    cache_read_price: Decimal = Decimal("0.30")


@dataclass(frozen=True)
class PriceTable:
    reasoner: ReasonerPricing = field(default_factory=ReasonerPricing)
    answerer: AnswererPricing = field(default_factory=AnswererPricing)

    @classmethod
    def from_dict(cls, data: dict | None) -> PriceTable:
        data = data or {}
        r = data.get("Reasoner", {})
        a = data.get("Answerer", {})
        rd = ReasonerPricing()
        ad = AnswererPricing()
        return cls(
            reasoner=ReasonerPricing(
                input_cache_hit_price=_dec(r.get("InputCacheHitPrice", rd.input_cache_hit_price)),
                input_cache_miss_price=_dec(r.get("InputCacheMissPrice", rd.input_cache_miss_price)),
                output_price=_dec(r.get("OutputPrice", rd.output_price)),
            ),
            answerer=AnswererPricing(
                input_price=_dec(a.get("InputPrice", ad.input_price)),
                output_price=_dec(a.get("OutputPrice", ad.output_price)),
                cache_write_price=_dec(a.get("CacheWritePrice", ad.cache_write_price)),
                cache_read_price=_dec(a.get("CacheReadPrice", ad.cache_read_price)),
            ),
        )


def reasoner_cost(
    input_tokens: int,
    output_tokens: int,
    pricing: ReasonerPricing,
    *,
    cached_tokens: int = 0,
) -> Decimal:
    """Blended cost: cache hits and misses are priced separately."""
    cache_hit = Decimal(cached_tokens) / _PER_MILLION * pricing.input_cache_hit_price
    cache_miss = Decimal(input_tokens - cached_tokens) / _PER_MILLION * pricing.input_cache_miss_price
    output = Decimal(output_tokens) / _PER_MILLION * pricing.output_price
    return cache_hit + cache_miss + output


def answerer_cost(
    input_tokens: int,
    output_tokens: int,
    pricing: AnswererPricing,
    *,
    cache_write_tokens: int = 0,
    cache_read_tokens: int = 0,
) -> Decimal:
    input_cost = Decimal(input_tokens) / _PER_MILLION * pricing.input_price
    output_cost = Decimal(output_tokens) / _PER_MILLION * pricing.output_price
    cache_write = Decimal(cache_write_tokens) / _PER_MILLION * pricing.cache_write_price
    cache_read = Decimal(cache_read_tokens) / _PER_MILLION * pricing.cache_read_price
    return input_cost + output_cost + cache_write + cache_read


def format_cost(cost: Decimal) -> str:
    rounded = _dec(cost).quantize(_COST_QUANTUM, rounding=ROUND_HALF_UP)
    return f"${rounded}"


class UsageWatermark:
    """Field-wise maximum over cumulative usage snapshots of one backend call.

    Backends report running totals while streaming, so snapshots are never
    summed and the reported value never decreases.
    """

    def __init__(self) -> None:
        self._input = 0
        self._output = 0
        self._total = 0
        self.observed = False

    def observe(self, usage: BackendUsage) -> None:
        self._input = max(self._input, usage.input_tokens)
        self._output = max(self._output, usage.output_tokens)
        self._total = max(self._total, usage.total_tokens)
        self.observed = True

    def snapshot(self) -> BackendUsage:
        return BackendUsage(
            input_tokens=self._input,
            output_tokens=self._output,
            total_tokens=max(self._total, self._input + self._output),
        )


def backend_usage_dict(usage: BackendUsage, cost: Decimal) -> dict:
    return {
        "input_tokens": usage.input_tokens,
        "output_tokens": usage.output_tokens,
        "total_tokens": usage.total_tokens,
        "total_cost": format_cost(cost),
    }


def combined_usage(
    reasoner_usage: BackendUsage,
    answerer_usage: BackendUsage,
    prices: PriceTable,
) -> dict:
    """Cost both backends and assemble the ``combined_usage`` payload."""
    r_cost = reasoner_cost(reasoner_usage.input_tokens, reasoner_usage.output_tokens, prices.reasoner)
    a_cost = answerer_cost(answerer_usage.input_tokens, answerer_usage.output_tokens, prices.answerer)
    return {
        "reasoner_usage": backend_usage_dict(reasoner_usage, r_cost),
        "answerer_usage": backend_usage_dict(answerer_usage, a_cost),
        "total_cost": format_cost(r_cost + a_cost),
    }

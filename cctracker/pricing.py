"""Per-model pricing lookup.

Rates are USD per million tokens. Rules are checked top-down and the first
match wins, so a more specific prefix (``claude-sonnet-4-5``) has to appear
before any prefix it extends (``claude-sonnet-4``).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from cctracker.models import TokenCounts

LONG_CONTEXT_THRESHOLD = 200_000
CACHE_WRITE_MULTIPLIER = 1.25
CACHE_READ_MULTIPLIER = 0.1


@dataclass(frozen=True)
class ModelRates:
    input: float
    output: float
    cache_write: float
    cache_read: float


def _rates(input_rate: float, output_rate: float) -> ModelRates:
    return ModelRates(
        input=input_rate,
        output=output_rate,
        cache_write=round(input_rate * CACHE_WRITE_MULTIPLIER, 6),
        cache_read=round(input_rate * CACHE_READ_MULTIPLIER, 6),
    )


SONNET_4 = _rates(3.0, 15.0)
SONNET_4_5 = _rates(3.0, 15.0)
SONNET_4_5_LONG_CONTEXT = _rates(6.0, 22.5)
OPUS_4_5 = _rates(5.0, 25.0)
HAIKU_4_5 = _rates(1.0, 5.0)

DEFAULT_RATES = SONNET_4

Rule = Callable[[str, TokenCounts], bool]


def _prefix(prefix: str) -> Rule:
    return lambda model, _tokens: model.startswith(prefix)


def _long_context(prefix: str) -> Rule:
    return lambda model, tokens: model.startswith(prefix) and tokens.context_tokens > LONG_CONTEXT_THRESHOLD


PRICING_RULES: list[tuple[Rule, ModelRates]] = [
    (_long_context("claude-sonnet-4-5"), SONNET_4_5_LONG_CONTEXT),
    (_prefix("claude-sonnet-4-5"), SONNET_4_5),
    (_prefix("claude-opus-4-5"), OPUS_4_5),
    (_prefix("claude-haiku-4-5"), HAIKU_4_5),
    (_prefix("claude-sonnet-4"), SONNET_4),
]


def rates_for(model: str | None, tokens: TokenCounts) -> ModelRates:
    """Return the rate table for one usage record."""
    name = (model or "").strip().lower()
    for matches, rates in PRICING_RULES:
        if matches(name, tokens):
            return rates
    return DEFAULT_RATES


def record_cost(model: str | None, tokens: TokenCounts) -> float:
    """USD cost of a single usage record."""
    rates = rates_for(model, tokens)
    return (
        tokens.input_tokens * rates.input
        + tokens.cache_creation_input_tokens * rates.cache_write
        + tokens.cache_read_input_tokens * rates.cache_read
        + tokens.output_tokens * rates.output
    ) / 1_000_000


def record_cost_without_cache(model: str | None, tokens: TokenCounts) -> float:
    """Hypothetical cost if every prompt token were billed at the base input rate."""
    rates = rates_for(model, tokens)
    return (tokens.context_tokens * rates.input + tokens.output_tokens * rates.output) / 1_000_000

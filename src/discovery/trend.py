"""Price trend classification and BUY/SELL/HOLD advice."""

from __future__ import annotations

import random
from collections.abc import Sequence
from typing import Protocol

from src.discovery.errors import ProviderError
from src.discovery.fallback import Strategy, first_success
from src.discovery.judge import GenerativeJudge, parse_json_reply
from src.discovery.prompts import TREND_PROMPT
from src.shared.logging import get_logger, get_tracer
from src.shared.models import ExternalPrice, PriceObservation, Prediction, Trend, TrendVerdict

logger = get_logger(__name__)
_tracer = get_tracer(__name__)

HISTORY_LIMIT = 30
RISE_THRESHOLD = 1.05
FALL_THRESHOLD = 0.95


class PriceHistoryStore(Protocol):
    async def recent(self, product_name: str, limit: int = HISTORY_LIMIT) -> list[PriceObservation]: ...


class ExternalPriceSource(Protocol):
    async def lookup(self, product_name: str) -> ExternalPrice: ...


class SimulatedExternalPriceSource:
    """Stand-in market feed: a base price per product plus up to ±10 of jitter."""

    BASE_PRICES: dict[str, float] = {
        "burger": 150.0,
        "pizza": 300.0,
        "samosa": 20.0,
    }
    DEFAULT_BASE_PRICE = 100.0
    JITTER = 10.0
    SOURCE = "Simulated External Market"

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    async def lookup(self, product_name: str) -> ExternalPrice:
        base = self.BASE_PRICES.get(product_name.strip().lower(), self.DEFAULT_BASE_PRICE)
        price = round(base + (self._rng.random() - 0.5) * 2 * self.JITTER, 2)
        return ExternalPrice(price=price, source=self.SOURCE)


def classify_trend(history: Sequence[PriceObservation]) -> Trend:
    """Compare the newest price (first entry) with the mean of the older ones."""
    if len(history) < 2:
        return Trend.INSUFFICIENT_DATA

    latest = history[0].price
    older = [obs.price for obs in history[1:]]
    mean_older = sum(older) / len(older)

    if latest > mean_older * RISE_THRESHOLD:
        return Trend.RISING
    if latest < mean_older * FALL_THRESHOLD:
        return Trend.FALLING
    return Trend.STABLE


def rule_based_verdict(trend: Trend, internal_price: float | None, external_price: float) -> TrendVerdict:
    prediction = Prediction.HOLD
    reason = "Prices appear stable based on recent internal data."
    if trend is Trend.RISING and internal_price is not None and internal_price < external_price:
        prediction = Prediction.BUY
        reason = "Internal price trending up and below external market."
    elif trend is Trend.FALLING and internal_price is not None and internal_price > external_price:
        prediction = Prediction.SELL
        reason = "Internal price trending down and above external market."

    return TrendVerdict(
        prediction=prediction,
        reason=reason,
        internal_price=internal_price,
        external_price=external_price,
    )


def parse_verdict_reply(text: str, internal_price: float | None, external_price: float) -> TrendVerdict:
    """Read the model's prediction and reason; prices always come from our data."""
    payload = parse_json_reply(text)
    if not isinstance(payload, dict):
        raise ProviderError("Trend reply is not a JSON object")

    raw_prediction = str(payload.get("prediction", "")).strip().upper()
    try:
        prediction = Prediction(raw_prediction)
    except ValueError as exc:
        raise ProviderError(f"Unknown prediction '{raw_prediction}'") from exc

    reason = payload.get("reason")
    if not isinstance(reason, str) or not reason.strip():
        raise ProviderError("Trend reply has no reason")

    return TrendVerdict(
        prediction=prediction,
        reason=reason.strip(),
        internal_price=internal_price,
        external_price=external_price,
    )


class TrendAdvisor:
    def __init__(self, judge: GenerativeJudge | None = None) -> None:
        self._judge = judge

    async def evaluate(
        self,
        history: Sequence[PriceObservation],
        external: ExternalPrice,
        product_name: str = "",
    ) -> TrendVerdict:
        """Advise on *history* (newest first); falls back to fixed rules on AI failure."""
        history = list(history)[:HISTORY_LIMIT]
        trend = classify_trend(history)
        internal_price = history[0].price if history else None

        async def ask_judge() -> TrendVerdict | None:
            if self._judge is None:
                return None
            prompt = TREND_PROMPT.format(
                product_name=product_name,
                internal_price=f"${internal_price}" if internal_price is not None else "N/A",
                history_limit=HISTORY_LIMIT,
                trend=trend.value,
                external_price=f"${external.price}",
                external_source=external.source,
            )
            reply = await self._judge.complete(prompt)
            return parse_verdict_reply(reply, internal_price, external.price)

        async def rules() -> TrendVerdict:
            return rule_based_verdict(trend, internal_price, external.price)

        with _tracer.start_as_current_span(
            "evaluate_trend",
            attributes={"product_name": product_name, "observations": len(history), "trend": trend.value},
        ):
            outcome = await first_success(
                [Strategy("ai_verdict", ask_judge), Strategy("rule_based", rules)],
                operation="trend",
            )

        if outcome is None:
            return rule_based_verdict(trend, internal_price, external.price)
        logger.info("Trend for '%s' is %s; verdict %s via %s",
                    product_name, trend.value, outcome.value.prediction.value, outcome.strategy)
        return outcome.value

"""Image-to-search-term resolution through a tiered fallback chain.

Tiers, each tried only when the previous one produced no term:

1. the multimodal generative model names the food directly;
2. the on-device classifier's top labels are mapped through a lexicon;
3. the on-device object detector's confident detections are mapped
   through a second lexicon;
4. the top classifier label is used verbatim.

On-device models are built once at startup and shared read-only.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import NamedTuple, Protocol

from src.discovery.errors import ClassifierUnavailable, ValidationError
from src.discovery.fallback import Strategy, first_success
from src.discovery.judge import GenerativeJudge
from src.discovery.prompts import IMAGE_LABEL_PROMPT
from src.shared.logging import get_logger, get_tracer
from src.shared.models import Classification, Detection

logger = get_logger(__name__)
_tracer = get_tracer(__name__)

TOP_K = 5
MIN_DETECTION_SCORE = 0.3

# Ordered substring rules; the first rule matching a label wins.
CLASSIFIER_LEXICON: tuple[tuple[tuple[str, ...], str], ...] = (
    (("burger", "cheeseburger"), "Burger"),
    (("pizza",), "Pizza"),
    (("samosa",), "Samosa"),
    (("cake", "cupcake", "pastry"), "Cake"),
    (("sandwich", "submarine"), "Sandwich"),
    (("donut", "doughnut"), "Donut"),
    (("noodle", "pasta", "spaghetti"), "Pasta"),
    (("biryani", "rice"), "Biryani"),
    (("dosa",), "Dosa"),
    (("idli",), "Idli"),
    (("vada", "vadai"), "Vada"),
    (("roll", "wrap"), "Roll"),
    (("muffin", "cookie", "biscuit"), "Cake"),
    (("ice cream", "ice-cream"), "Ice Cream"),
    (("coffee",), "Coffee"),
    (("tea",), "Tea"),
    (("juice",), "Juice"),
)

DETECTOR_LEXICON: tuple[tuple[tuple[str, ...], str], ...] = (
    (("cake",), "Cake"),
    (("pizza",), "Pizza"),
    (("donut", "doughnut"), "Donut"),
    (("sandwich",), "Sandwich"),
    (("hot dog",), "Burger"),  # closest fast-food category
    (("banana", "apple", "orange"), "Fruit"),
)


class LocalImageClassifier(Protocol):
    def top_k(self, image: bytes, k: int) -> list[Classification]: ...


class LocalObjectDetector(Protocol):
    def detect(self, image: bytes) -> list[Detection]: ...


@dataclass(frozen=True)
class VisionModels:
    """On-device models loaded at startup; either may be absent."""

    classifier: LocalImageClassifier | None = None
    detector: LocalObjectDetector | None = None


class ImageIntent(NamedTuple):
    term: str | None
    diagnostics: list[Classification]


def map_label(label: str, lexicon: tuple[tuple[tuple[str, ...], str], ...]) -> str | None:
    text = (label or "").lower()
    for needles, term in lexicon:
        if any(needle in text for needle in needles):
            return term
    return None


@dataclass
class _Attempt:
    image: bytes
    mime_type: str
    predictions: list[Classification] | None = None


class ImageIntentResolver:
    def __init__(self, judge: GenerativeJudge | None, models: VisionModels) -> None:
        self._judge = judge
        self._models = models

    async def resolve(self, image: bytes, mime_type: str) -> ImageIntent:
        """Return the search term for *image* (``None`` if no tier found one).

        Provider and classifier failures never escape; diagnostics hold
        whatever the classifier reported, even when the term is ``None``.
        """
        if not image:
            raise ValidationError("An image is required.")

        attempt = _Attempt(image=image, mime_type=mime_type or "image/jpeg")
        strategies: list[Strategy[str]] = [
            Strategy("vision_ai", lambda: self._ask_vision_model(attempt)),
            Strategy("local_classifier", lambda: self._classify(attempt)),
            Strategy("object_detector", lambda: self._detect(attempt)),
            Strategy("raw_label", lambda: self._raw_label(attempt)),
        ]

        with _tracer.start_as_current_span(
            "resolve_image", attributes={"mime_type": attempt.mime_type, "bytes": len(image)},
        ) as span:
            outcome = await first_success(strategies, operation="image_intent")
            term = outcome.value if outcome else None
            span.set_attribute("term", term or "")

        logger.info("Image resolved to '%s'", term or "unknown")
        return ImageIntent(term=term, diagnostics=list(attempt.predictions or []))

    async def _ask_vision_model(self, attempt: _Attempt) -> str | None:
        if self._judge is None:
            return None
        reply = await self._judge.complete_multimodal(IMAGE_LABEL_PROMPT, attempt.image, attempt.mime_type)
        return reply.strip() or None

    async def _predictions(self, attempt: _Attempt) -> list[Classification]:
        if attempt.predictions is None:
            classifier = self._models.classifier
            if classifier is None:
                raise ClassifierUnavailable("No local image classifier is loaded")
            try:
                raw = await asyncio.to_thread(classifier.top_k, attempt.image, TOP_K)
            except Exception as exc:
                raise ClassifierUnavailable(f"Local classifier failed: {exc}") from exc
            ordered = sorted(raw or [], key=lambda p: p.confidence, reverse=True)
            attempt.predictions = ordered[:TOP_K]
        return attempt.predictions

    async def _classify(self, attempt: _Attempt) -> str | None:
        for prediction in await self._predictions(attempt):
            term = map_label(prediction.label, CLASSIFIER_LEXICON)
            if term:
                return term
        return None

    async def _detect(self, attempt: _Attempt) -> str | None:
        detector = self._models.detector
        if detector is None:
            raise ClassifierUnavailable("No local object detector is loaded")
        try:
            detections = await asyncio.to_thread(detector.detect, attempt.image)
        except Exception as exc:
            raise ClassifierUnavailable(f"Local object detector failed: {exc}") from exc

        confident = [d for d in detections or [] if d.score >= MIN_DETECTION_SCORE]
        for detection in confident:
            term = map_label(detection.label, DETECTOR_LEXICON)
            if term:
                return term
        return None

    async def _raw_label(self, attempt: _Attempt) -> str | None:
        if not attempt.predictions:
            return None
        return attempt.predictions[0].label.split(",")[0].strip() or None

"""Uniform response shape for both ranking paths."""

from __future__ import annotations

from collections.abc import Sequence

from src.shared.models import Classification, ImageSearchResponse, SearchResult


def assemble(
    result: SearchResult,
    *,
    detected_label: str | None = None,
    predictions: Sequence[Classification] = (),
) -> ImageSearchResponse:
    """Attach image diagnostics to *result*; *result* itself is left untouched."""
    return ImageSearchResponse(
        **result.model_dump(),
        detected_label=detected_label,
        predictions=[p.model_copy() for p in predictions],
    )

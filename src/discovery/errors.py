"""Error taxonomy for the discovery engine."""

from __future__ import annotations


class DiscoveryError(Exception):
    """Base class for every error raised by the discovery engine."""


class ValidationError(DiscoveryError):
    """A required input is missing or malformed; raised before any collaborator call."""


class Unavailable(DiscoveryError):
    """The storage collaborator could not be reached or the query failed."""


class ProviderError(DiscoveryError):
    """The generative model failed or replied with something unusable."""


class ClassifierUnavailable(DiscoveryError):
    """An on-device model is not loaded or failed while running."""

"""Error taxonomy shared by the discovery engine and the API layer."""

from __future__ import annotations


class DiscoveryError(Exception):
    """Base class for every discovery-engine failure."""


class InvalidInput(DiscoveryError, ValueError):
    """Malformed coordinates or out-of-range radius/limit/grid parameters.

    Raised before any store access; terminal for the request.
    """


class RetrievalFailed(DiscoveryError):
    """The backing store was unreachable or the query errored.

    Terminal for the whole request. The engine never retries.
    """


class EnrichmentDegraded(DiscoveryError):
    """A single candidate could not be enriched.

    Logged and replaced with conservative defaults; never fails the batch.
    """

    def __init__(self, pharmacy_id: str, reason: str):
        super().__init__(f"enrichment degraded for {pharmacy_id}: {reason}")
        self.pharmacy_id = pharmacy_id
        self.reason = reason


class NotFound(DiscoveryError):
    """A referenced pharmacy id does not exist in the store."""

    def __init__(self, pharmacy_id: str):
        super().__init__(f"pharmacy not found: {pharmacy_id}")
        self.pharmacy_id = pharmacy_id

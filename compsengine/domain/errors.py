# compsengine/domain/errors.py
from __future__ import annotations

# Stored on cache rows for a reachable-but-empty search.
NO_CANDIDATES_NOTE = "no_candidates_found"


class ComparablesError(Exception):
    """Base class for failures that surface out of the comparables engine."""


class UpstreamUnavailable(ComparablesError):
    """
    Provider could not be reached (network, auth, rate limit, timeout, open circuit).
    Retryable. Never cached.
    """

    def __init__(self, message: str, *, attempts: list[dict] | None = None) -> None:
        super().__init__(message)
        self.attempts = attempts or []


class MalformedCandidate(ComparablesError):
    """A single raw candidate could not be normalized (no usable address)."""

    def __init__(self, message: str, *, fingerprint: str) -> None:
        super().__init__(message)
        self.fingerprint = fingerprint


class CacheStoreError(ComparablesError):
    """Durable cache store unreachable or failed mid-operation."""

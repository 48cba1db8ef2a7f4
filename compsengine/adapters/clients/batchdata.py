# compsengine/adapters/clients/batchdata.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any

import httpx

from ...domain.address import clean_address, street_part
from ...domain.filtering import years_before
from ...domain.payload import RawProperty, decode_candidates
from ...domain.types import ComparableFilters
from .http_resilience import CircuitOpen, HttpPolicy, ResilientHttp

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchDataConfig:
    """
    Everything the client needs, injected. Sandbox vs production is an explicit
    flag here; nothing is inferred from the key.
    """
    api_key: str | None
    base_url: str = "https://api.batchdata.com"
    search_path: str = "/api/v1/property/search"
    sandbox: bool = False
    take: int = 5
    cost_per_search: float = 0.46
    search_price_min: int = 100_000
    search_price_max: int = 20_000_000
    recency_years: int = 3
    http: HttpPolicy = field(default_factory=HttpPolicy)

    @classmethod
    def from_settings(cls) -> "BatchDataConfig":
        from ...config import settings

        return cls(
            api_key=settings.BATCHDATA_API_KEY or None,
            base_url=settings.BATCHDATA_BASE_URL,
            search_path=settings.BATCHDATA_SEARCH_PATH,
            sandbox=settings.BATCHDATA_SANDBOX,
            take=settings.BATCHDATA_TAKE,
            cost_per_search=settings.BATCHDATA_COST_PER_SEARCH,
            search_price_min=settings.COMPS_SEARCH_PRICE_MIN,
            search_price_max=settings.COMPS_SEARCH_PRICE_MAX,
            recency_years=settings.COMPS_RECENCY_YEARS,
            http=HttpPolicy.from_settings(),
        )


@dataclass(frozen=True)
class SearchStrategy:
    name: str
    criteria: dict[str, Any]
    options: dict[str, Any] = field(default_factory=dict)

    def body(self, take: int) -> dict[str, Any]:
        opts = dict(self.options)
        opts["take"] = take
        return {"searchCriteria": dict(self.criteria), "options": opts}


def build_search_strategies(
    zip_code: str,
    filters: ComparableFilters,
    config: BatchDataConfig,
    *,
    today: date | None = None,
) -> list[SearchStrategy]:
    """
    Ordered fallbacks: direct address -> zip -> cleaned address.
    Address strategies are only built when the subject address is known.
    """
    today = today or date.today()
    sale_window = {
        "lastSaleDate": {
            "minDate": years_before(today, config.recency_years).isoformat(),
            "maxDate": today.isoformat(),
        }
    }
    price_bounds = {"min": config.search_price_min, "max": config.search_price_max}
    near = {"useDistance": True, "distanceMiles": float(filters.radius_miles)}

    strategies: list[SearchStrategy] = []
    street = street_part(filters.subject_address)

    if street:
        strategies.append(
            SearchStrategy(
                name="direct_address",
                criteria={"query": f"{street}, {zip_code}".strip(", "), "price": price_bounds},
                options=near,
            )
        )

    strategies.append(
        SearchStrategy(
            name="zip_fallback",
            criteria={
                "query": zip_code,
                "sale": sale_window,
                "price": price_bounds,
                "quickLists": ["recently-sold"],
            },
        )
    )

    cleaned = clean_address(filters.subject_address)
    if cleaned and cleaned != street:
        strategies.append(
            SearchStrategy(
                name="cleaned_address",
                criteria={"query": f"{cleaned} {zip_code}".strip(), "price": price_bounds},
                options=near,
            )
        )

    return strategies


# Probe order for the envelopes the provider has been seen to return.
_ENVELOPE_PATHS: tuple[tuple[str, ...], ...] = (
    ("data", "results", "properties"),
    ("results", "properties"),
    ("properties",),
    ("data", "properties"),
    ("data", "results"),
    ("results",),
    ("data",),
)


def extract_properties(payload: Any) -> list[Any]:
    if isinstance(payload, list):
        return payload
    if not isinstance(payload, dict):
        return []
    for path in _ENVELOPE_PATHS:
        cur: Any = payload
        for key in path:
            cur = cur.get(key) if isinstance(cur, dict) else None
        if isinstance(cur, list) and cur:
            return cur
    return []


def is_error_envelope(payload: Any) -> bool:
    if not isinstance(payload, dict):
        return False
    if payload.get("error"):
        return True
    status = payload.get("status")
    if isinstance(status, dict):
        try:
            return int(status.get("code") or 0) >= 400
        except (TypeError, ValueError):
            return False
    return False


@dataclass
class SearchAttempt:
    strategy: str
    ok: bool
    reached: bool  # provider answered (even if unusable)
    count: int = 0
    error: str | None = None


@dataclass
class SearchOutcome:
    candidates: list[RawProperty] = field(default_factory=list)
    strategy: str | None = None
    attempts: list[SearchAttempt] = field(default_factory=list)

    @property
    def billed_calls(self) -> int:
        return sum(1 for a in self.attempts if a.reached)

    @property
    def unavailable(self) -> bool:
        """
        No candidates and at least one attempt never reached the provider.
        An empty answer only counts as "nothing there" when every strategy
        was actually asked.
        """
        if self.candidates:
            return False
        return not self.attempts or any(not a.reached for a in self.attempts)

    def attempts_snapshot(self) -> list[dict[str, Any]]:
        return [
            {"strategy": a.strategy, "ok": a.ok, "reached": a.reached, "count": a.count, "error": a.error}
            for a in self.attempts
        ]


class BatchDataClient:
    """
    Low-level client for BatchData property search.
    Returns a SearchOutcome; never raises to the caller.
    """

    def __init__(self, config: BatchDataConfig, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.config = config
        self._http = ResilientHttp(policy=config.http, transport=transport)

    @classmethod
    def from_settings(cls) -> "BatchDataClient":
        return cls(BatchDataConfig.from_settings())

    def is_available(self) -> bool:
        return bool(self.config.api_key)

    def _headers(self) -> dict[str, str]:
        if not self.config.api_key:
            raise RuntimeError("BATCHDATA_API_KEY is not set")
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
            "accept": "application/json",
        }

    def _url(self) -> str:
        return f"{self.config.base_url.rstrip('/')}/{self.config.search_path.lstrip('/')}"

    async def _attempt(self, strategy: SearchStrategy, take: int) -> tuple[SearchAttempt, list[RawProperty]]:
        try:
            resp = await self._http.request("POST", self._url(), headers=self._headers(), json=strategy.body(take))
        except CircuitOpen as e:
            return SearchAttempt(strategy.name, ok=False, reached=False, error=str(e)), []
        except httpx.HTTPStatusError as e:
            return SearchAttempt(strategy.name, ok=False, reached=False, error=f"http_{e.response.status_code}"), []
        except httpx.HTTPError as e:
            return SearchAttempt(strategy.name, ok=False, reached=False, error=f"{type(e).__name__}: {e}"), []

        try:
            data = resp.json()
        except ValueError as e:
            return SearchAttempt(strategy.name, ok=False, reached=True, error=f"bad_json: {e}"), []

        if is_error_envelope(data):
            err = data.get("error") if isinstance(data, dict) else None
            return SearchAttempt(strategy.name, ok=False, reached=True, error=f"error_envelope: {err!r}"), []

        candidates = decode_candidates(extract_properties(data))
        if not candidates:
            return SearchAttempt(strategy.name, ok=False, reached=True, error="no_properties"), []

        return SearchAttempt(strategy.name, ok=True, reached=True, count=len(candidates)), candidates

    async def search(self, strategies: list[SearchStrategy], max_results: int | None = None) -> SearchOutcome:
        """
        Try strategies in order; stop at the first that yields property objects.
        Sequential on purpose: every attempt is a billed call.
        """
        outcome = SearchOutcome()
        if not self.is_available():
            log.warning("BatchData search skipped: BATCHDATA_API_KEY is not set")
            outcome.attempts.append(SearchAttempt("config", ok=False, reached=False, error="api_key_missing"))
            return outcome

        take = max(1, int(max_results or self.config.take))

        for strategy in strategies:
            log.info("BatchData search: strategy=%s take=%d sandbox=%s", strategy.name, take, self.config.sandbox)
            attempt, candidates = await self._attempt(strategy, take)
            outcome.attempts.append(attempt)

            if not attempt.ok:
                log.warning("BatchData strategy %s failed: %s", strategy.name, attempt.error)
                continue

            outcome.candidates = candidates[:take]
            outcome.strategy = strategy.name
            break

        log.info(
            "BatchData usage: %d billed call(s), %d properties, ~$%.2f",
            outcome.billed_calls,
            len(outcome.candidates),
            outcome.billed_calls * self.config.cost_per_search,
        )
        return outcome

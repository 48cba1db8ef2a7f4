# compsengine/adapters/clients/http_resilience.py
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

RETRYABLE_STATUS = (429, 500, 502, 503, 504)


class CircuitOpen(httpx.HTTPError):
    pass


@dataclass(frozen=True)
class HttpPolicy:
    timeout_s: float = 20.0
    max_retries: int = 2
    backoff_base_s: float = 0.5
    rate_limit_rps: float = 0.0  # 0 disables
    circuit_fail_threshold: int = 5
    circuit_reset_s: float = 60.0

    @classmethod
    def from_settings(cls) -> "HttpPolicy":
        from ...config import settings

        return cls(
            timeout_s=float(settings.HTTP_TIMEOUT_S),
            max_retries=int(settings.HTTP_MAX_RETRIES),
            backoff_base_s=float(settings.HTTP_BACKOFF_BASE_S),
            rate_limit_rps=float(settings.HTTP_RATE_LIMIT_RPS),
            circuit_fail_threshold=int(settings.HTTP_CIRCUIT_FAIL_THRESHOLD),
            circuit_reset_s=float(settings.HTTP_CIRCUIT_RESET_S),
        )


@dataclass
class _CircuitState:
    fails: int = 0
    opened_at: float | None = None


@dataclass
class ResilientHttp:
    """
    Retry + backoff + per-instance circuit breaker + simple rate limiter.
    One instance per upstream provider.
    """
    policy: HttpPolicy = field(default_factory=HttpPolicy)
    transport: httpx.AsyncBaseTransport | None = None

    _circuit: _CircuitState = field(default_factory=_CircuitState, init=False)
    _rate_lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)
    _last_ts: float = field(default=0.0, init=False)

    def circuit_is_open(self, now: float | None = None) -> bool:
        if self._circuit.opened_at is None:
            return False
        now = time.time() if now is None else now
        return (now - self._circuit.opened_at) < self.policy.circuit_reset_s

    def _on_success(self) -> None:
        self._circuit.fails = 0
        self._circuit.opened_at = None

    def _on_failure(self) -> None:
        self._circuit.fails += 1
        if self._circuit.fails >= self.policy.circuit_fail_threshold:
            self._circuit.opened_at = time.time()

    async def _rate_limit(self) -> None:
        rps = self.policy.rate_limit_rps
        if rps <= 0:
            return
        min_gap = 1.0 / rps
        async with self._rate_lock:
            now = time.time()
            wait = (self._last_ts + min_gap) - now
            if wait > 0:
                await asyncio.sleep(wait)
            self._last_ts = time.time()

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        json: Any | None = None,
    ) -> httpx.Response:
        if self.circuit_is_open():
            raise CircuitOpen(f"circuit_open: refusing external call to {url}")

        await self._rate_limit()

        timeout = httpx.Timeout(self.policy.timeout_s)
        backoff = self.policy.backoff_base_s

        last_exc: Exception | None = None
        for attempt in range(self.policy.max_retries + 1):
            try:
                async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as client:
                    resp = await client.request(method, url, headers=headers, params=params, json=json)

                if resp.status_code in RETRYABLE_STATUS:
                    raise httpx.HTTPStatusError("retryable_status", request=resp.request, response=resp)

                resp.raise_for_status()
                self._on_success()
                return resp
            except httpx.HTTPStatusError as e:
                last_exc = e
                self._on_failure()
                # 4xx other than 429 will not get better by retrying
                if e.response.status_code not in RETRYABLE_STATUS:
                    break
            except (httpx.TimeoutException, httpx.NetworkError) as e:
                last_exc = e
                self._on_failure()

            if attempt >= self.policy.max_retries:
                break
            await asyncio.sleep(min(5.0, backoff * (2**attempt)))

        assert last_exc is not None
        raise last_exc

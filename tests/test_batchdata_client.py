import json
from datetime import date

import httpx
import pytest

from compsengine.adapters.clients.batchdata import (
    BatchDataConfig,
    build_search_strategies,
    extract_properties,
    is_error_envelope,
)
from compsengine.domain.types import ComparableFilters


def test_strategies_in_fallback_order():
    cfg = BatchDataConfig(api_key="k")
    filters = ComparableFilters(subject_address="123 Main St., Apt 4B", radius_miles=1.0)
    strategies = build_search_strategies("62701", filters, cfg, today=date(2025, 6, 1))

    assert [s.name for s in strategies] == ["direct_address", "zip_fallback", "cleaned_address"]

    zip_body = strategies[1].body(5)
    assert zip_body["searchCriteria"]["query"] == "62701"
    assert zip_body["searchCriteria"]["sale"]["lastSaleDate"] == {"minDate": "2022-06-01", "maxDate": "2025-06-01"}
    assert zip_body["searchCriteria"]["price"] == {"min": 100_000, "max": 20_000_000}
    assert zip_body["searchCriteria"]["quickLists"] == ["recently-sold"]
    assert zip_body["options"] == {"take": 5}

    direct = strategies[0].body(3)
    assert direct["options"] == {"useDistance": True, "distanceMiles": 1.0, "take": 3}
    assert strategies[2].criteria["query"] == "123 Main St 62701"


def test_zip_only_when_no_subject_address():
    strategies = build_search_strategies("62701", ComparableFilters(), BatchDataConfig(api_key="k"))
    assert [s.name for s in strategies] == ["zip_fallback"]


@pytest.mark.parametrize(
    "payload",
    [
        {"results": {"properties": [{"a": 1}]}},
        {"data": {"results": {"properties": [{"a": 1}]}}},
        {"properties": [{"a": 1}]},
        {"data": [{"a": 1}]},
        [{"a": 1}],
    ],
)
def test_envelope_variants(payload):
    assert extract_properties(payload) == [{"a": 1}]


def test_error_envelope_detection():
    assert is_error_envelope({"error": "bad request"})
    assert is_error_envelope({"status": {"code": 401, "text": "Unauthorized"}})
    assert not is_error_envelope({"status": {"code": 200}, "results": {"properties": []}})


async def test_first_successful_strategy_wins(make_client, raw_candidate):
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        seen.append(body)
        assert request.headers["Authorization"] == "Bearer test-key"
        assert request.url.path == "/api/v1/property/search"
        if body["searchCriteria"]["query"] == "62701":
            return httpx.Response(200, json={"results": {"properties": [raw_candidate("1 Elm St"), "junk"]}})
        return httpx.Response(200, json={"results": {"properties": []}})

    client = make_client(handler)
    filters = ComparableFilters(subject_address="123 Main St")
    outcome = await client.search(build_search_strategies("62701", filters, client.config))

    assert outcome.strategy == "zip_fallback"
    assert len(outcome.candidates) == 1
    assert outcome.billed_calls == 2
    assert outcome.unavailable is False
    # cleaned_address never tried once zip succeeded
    assert len(seen) == 2
    assert all(b["options"]["take"] == 5 for b in seen)


async def test_all_strategies_empty_is_reachable_not_unavailable(make_client):
    client = make_client(lambda r: httpx.Response(200, json={"results": {"properties": []}}))
    outcome = await client.search(build_search_strategies("62701", ComparableFilters(), client.config))
    assert outcome.candidates == []
    assert outcome.unavailable is False
    assert outcome.attempts_snapshot()[0]["error"] == "no_properties"


async def test_transport_failure_then_empty_is_unavailable(make_client):
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if body["searchCriteria"]["query"] == "62701":
            return httpx.Response(200, json={"results": {"properties": []}})
        raise httpx.ConnectError("connection reset", request=request)

    client = make_client(handler)
    filters = ComparableFilters(subject_address="123 Main St")
    outcome = await client.search(build_search_strategies("62701", filters, client.config))

    assert outcome.candidates == []
    assert outcome.billed_calls == 1
    assert outcome.unavailable is True


async def test_auth_failure_is_unavailable(make_client):
    client = make_client(lambda r: httpx.Response(401, json={"error": "unauthorized"}))
    outcome = await client.search(build_search_strategies("62701", ComparableFilters(), client.config))
    assert outcome.unavailable is True
    assert outcome.billed_calls == 0
    assert outcome.attempts[0].error == "http_401"


async def test_network_error_is_unavailable(make_client):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler)
    outcome = await client.search(build_search_strategies("62701", ComparableFilters(), client.config))
    assert outcome.unavailable is True


async def test_missing_api_key_makes_no_calls(make_client):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    client = make_client(handler, api_key=None)
    outcome = await client.search(build_search_strategies("62701", ComparableFilters(), client.config))
    assert calls == []
    assert outcome.unavailable is True
    assert outcome.attempts[0].error == "api_key_missing"


async def test_retryable_status_is_retried(make_client, fast_policy):
    from dataclasses import replace

    statuses = [503, 200]

    def handler(request: httpx.Request) -> httpx.Response:
        code = statuses.pop(0)
        if code != 200:
            return httpx.Response(code)
        return httpx.Response(200, json={"properties": [{"address": {"street": "1 Elm St"}}]})

    client = make_client(handler, http=replace(fast_policy, max_retries=1))
    outcome = await client.search(build_search_strategies("62701", ComparableFilters(), client.config))
    assert outcome.strategy == "zip_fallback"
    assert statuses == []


async def test_circuit_opens_after_repeated_failures(make_client, fast_policy):
    from dataclasses import replace

    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(500)

    client = make_client(handler, http=replace(fast_policy, circuit_fail_threshold=2))
    strategies = build_search_strategies("62701", ComparableFilters(), client.config)
    await client.search(strategies)
    await client.search(strategies)
    outcome = await client.search(strategies)

    assert len(calls) == 2
    assert outcome.unavailable is True
    assert "circuit_open" in (outcome.attempts[0].error or "")

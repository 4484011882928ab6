"""PubTatorClient against a mocked HTTP transport."""

import asyncio
import time

import httpx
import pytest

from domain.errors import InvalidArgument, TransportError, UpstreamError
from domain.pubtator import PubTatorClient, TokenBucket, flatten_bioc_passages

BIOC_PAYLOAD = {
    "PubTator3": [
        {
            "id": "12345678",
            "passages": [
                {"infons": {"type": "title"}, "text": "Lavender oil for anxiety"},
                {"infons": {"type": "abstract"}, "text": "Linalool reduced anxiety scores."},
            ],
        },
        {"id": "23456789", "passages": [{"text": "Second paper."}, {"text": ""}]},
    ]
}


class Recorder:
    def __init__(self, handler):
        self.handler = handler
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)


def _client(handler, rate: float = 1000.0) -> PubTatorClient:
    transport = httpx.MockTransport(handler)
    return PubTatorClient(
        base_url="https://pubtator.test/api",
        rate_limiter=TokenBucket(rate),
        http_client=httpx.AsyncClient(transport=transport),
    )


def test_get_text_without_ids_fails_before_any_request():
    recorder = Recorder(lambda request: httpx.Response(200, json={}))

    async def scenario():
        async with _client(recorder) as client:
            with pytest.raises(InvalidArgument):
                await client.get_text()
            with pytest.raises(InvalidArgument):
                await client.get_text(pmids="12345678", pmcids="PMC1")

    asyncio.run(scenario())
    assert recorder.requests == []


def test_get_text_flattens_biocjson_passages():
    recorder = Recorder(lambda request: httpx.Response(200, json=BIOC_PAYLOAD))

    async def scenario():
        async with _client(recorder) as client:
            return await client.get_text(pmids=["12345678", "23456789"])

    text = asyncio.run(scenario())

    assert text == "Lavender oil for anxiety\nLinalool reduced anxiety scores.\nSecond paper."
    request = recorder.requests[0]
    assert request.url.path == "/api/publications/export/biocjson"
    assert request.url.params["pmids"] == "12345678,23456789"
    assert "full" not in request.url.params


def test_get_text_returns_raw_text_for_pubtator_format():
    recorder = Recorder(lambda request: httpx.Response(200, text="12345678|t|Lavender oil"))

    async def scenario():
        async with _client(recorder) as client:
            return await client.get_text(pmcids="PMC123", format="pubtator", full=True)

    assert asyncio.run(scenario()) == "12345678|t|Lavender oil"
    assert recorder.requests[0].url.params["full"] == "true"


def test_flatten_accepts_single_documents_and_lists():
    document = {"passages": [{"text": "only passage"}]}

    assert flatten_bioc_passages(document) == "only passage"
    assert flatten_bioc_passages([document, document]) == "only passage\nonly passage"
    assert flatten_bioc_passages({"documents": [document]}) == "only passage"
    assert flatten_bioc_passages("nonsense") == ""


def test_find_entity_sends_one_get_with_params():
    recorder = Recorder(lambda request: httpx.Response(200, json=[{"_id": "@CHEMICAL_Linalool"}]))

    async def scenario():
        async with _client(recorder) as client:
            return await client.find_entity("linalool", concept="Chemical")

    assert asyncio.run(scenario()) == [{"_id": "@CHEMICAL_Linalool"}]
    assert len(recorder.requests) == 1
    params = recorder.requests[0].url.params
    assert params["query"] == "linalool"
    assert params["concept"] == "chemical"
    assert params["limit"] == "5"


def test_search_truncates_results_and_reports_count():
    payload = {"results": [{"pmid": n} for n in range(20)], "count": 20, "total_pages": 2}
    recorder = Recorder(lambda request: httpx.Response(200, json=payload))

    async def scenario():
        async with _client(recorder) as client:
            return await client.search("@CHEMICAL_Linalool AND @DISEASE_Anxiety", limit=3)

    result = asyncio.run(scenario())

    assert result["count"] == 20
    assert result["total_pages"] == 2
    assert [hit["pmid"] for hit in result["results"]] == [0, 1, 2]
    assert recorder.requests[0].url.params["text"] == "@CHEMICAL_Linalool AND @DISEASE_Anxiety"


def test_search_rejects_grouped_identifiers_without_http():
    recorder = Recorder(lambda request: httpx.Response(200, json={}))

    async def scenario():
        async with _client(recorder) as client:
            await client.search("(@CHEMICAL_Linalool AND @DISEASE_Anxiety)")

    with pytest.raises(InvalidArgument):
        asyncio.run(scenario())
    assert recorder.requests == []


def test_find_related_maps_arguments():
    recorder = Recorder(lambda request: httpx.Response(200, json=[]))

    async def scenario():
        async with _client(recorder) as client:
            await client.find_related("@CHEMICAL_Linalool", relation_type="treat", target_type="disease")

    asyncio.run(scenario())
    params = recorder.requests[0].url.params
    assert recorder.requests[0].url.path == "/api/relations"
    assert (params["e1"], params["type"], params["e2"]) == ("@CHEMICAL_Linalool", "treat", "disease")


def test_non_success_status_raises_upstream_error():
    recorder = Recorder(lambda request: httpx.Response(503, text="busy"))

    async def scenario():
        async with _client(recorder) as client:
            await client.find_entity("lavender")

    with pytest.raises(UpstreamError) as excinfo:
        asyncio.run(scenario())
    assert excinfo.value.status_code == 503


def test_malformed_json_raises_upstream_error():
    recorder = Recorder(lambda request: httpx.Response(200, text="<html>"))

    async def scenario():
        async with _client(recorder) as client:
            await client.find_entity("lavender")

    with pytest.raises(UpstreamError):
        asyncio.run(scenario())


def test_network_failure_raises_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async def scenario():
        async with _client(handler) as client:
            await client.find_entity("lavender")

    with pytest.raises(TransportError):
        asyncio.run(scenario())


def test_ten_back_to_back_calls_respect_three_per_second():
    recorder = Recorder(lambda request: httpx.Response(200, json=[]))

    async def scenario():
        async with _client(recorder, rate=3.0) as client:
            started = time.monotonic()
            for _ in range(10):
                await client.find_entity("lavender")
            return time.monotonic() - started

    elapsed = asyncio.run(scenario())

    assert len(recorder.requests) == 10
    assert elapsed >= 2.95, f"10 calls finished in {elapsed:.2f}s"


def test_token_bucket_rejects_bad_configuration():
    with pytest.raises(ValueError):
        TokenBucket(0)
    with pytest.raises(ValueError):
        TokenBucket(3.0, capacity=0.5)

"""
Unit tests for the Travelpayouts gateway and result chunk merging.
"""

import hashlib
import json
import pytest

from app.core.exceptions import ResponseParseError, UpstreamHttpError
from app.models.requests import SearchRequest
from app.services.http_client import AsyncHttpClient
from app.services.travelpayouts_client import TravelpayoutsClient, merge_result_chunks
from tests.fixtures import (
    AUTOCOMPLETE_PATH,
    RESULTS_PATH,
    SEARCH_PATH,
    RecordingRouter,
    SearchParamFixtures,
    TravelpayoutsFixtures,
    click_path,
)


def make_gateway(router: RecordingRouter) -> TravelpayoutsClient:
    return TravelpayoutsClient(
        AsyncHttpClient(timeout=5, transport=router.transport()),
        marker="123456",
        token="secret",
    )


class TestMergeResultChunks:
    """Test cases for merging chunked result responses."""

    def test_merge_list_of_chunks(self):
        """Test that proposals and gates from every chunk are combined."""
        chunks = [
            {"search_id": "s1", "proposals": [{"sign": "a"}], "gates_info": {"1": {"label": "A"}}},
            {"search_id": "s1", "proposals": [{"sign": "b"}], "gates_info": {"2": {"label": "B"}}},
            {"search_id": "s1", "meta": {"uuid": "s1"}},
        ]

        merged = merge_result_chunks(chunks)

        assert merged["search_id"] == "s1"
        assert [p["sign"] for p in merged["proposals"]] == ["a", "b"]
        assert set(merged["gates_info"]) == {"1", "2"}
        assert merged["meta"] == {"uuid": "s1"}

    def test_single_object(self):
        merged = merge_result_chunks({"search_id": "s1", "proposals": [{"sign": "a"}]})
        assert merged["proposals"] == [{"sign": "a"}]

    def test_wrapped_payload(self):
        """Test the {"resultados": ...} wrapper used by the proxy."""
        merged = merge_result_chunks({"resultados": [{"search_id": "s1", "proposals": [{"sign": "a"}]}]})
        assert merged["search_id"] == "s1"
        assert len(merged["proposals"]) == 1

    def test_empty_list_means_not_ready(self):
        merged = merge_result_chunks([])
        assert merged == {"search_id": None, "proposals": [], "gates_info": {}}

    def test_non_object_rejected(self):
        with pytest.raises(ResponseParseError):
            merge_result_chunks("pending")


class TestSignature:
    """Test cases for request signing."""

    def test_one_way_signature(self):
        """Test the signature string layout for a one-way search."""
        gateway = TravelpayoutsClient(AsyncHttpClient(), marker="123456", token="secret")
        request = SearchRequest.from_payload(SearchParamFixtures.ONE_WAY)

        expected = hashlib.md5(
            "secret:www.benetrip.com.br:pt:123456:1:0:0:2025-09-10:LIS:GRU:Y:10.0.0.1".encode()
        ).hexdigest()
        assert gateway.generate_signature(request, "10.0.0.1") == expected

    def test_round_trip_adds_return_segment(self):
        """Test that the return segment is signed after the outbound one."""
        gateway = TravelpayoutsClient(AsyncHttpClient(), marker="123456", token="secret")
        request = SearchRequest.from_payload(SearchParamFixtures.ROUND_TRIP)

        expected = hashlib.md5(
            "secret:www.benetrip.com.br:pt:123456:2:1:0:"
            "2025-09-10:LIS:GRU:2025-09-20:GRU:LIS:Y:127.0.0.1".encode()
        ).hexdigest()
        assert gateway.generate_signature(request, "127.0.0.1") == expected

    def test_search_body(self):
        gateway = TravelpayoutsClient(AsyncHttpClient(), marker=123456, token="secret")
        request = SearchRequest.from_payload(SearchParamFixtures.ROUND_TRIP)

        body = gateway.build_search_body(request, "127.0.0.1")

        assert body["marker"] == "123456"
        assert body["passengers"] == {"adults": 2, "children": 1, "infants": 0}
        assert body["segments"] == [
            {"origin": "GRU", "destination": "LIS", "date": "2025-09-10"},
            {"origin": "LIS", "destination": "GRU", "date": "2025-09-20"},
        ]
        assert body["trip_class"] == "Y"
        assert len(body["signature"]) == 32


class TestTravelpayoutsClient:
    """Test cases for the gateway's network calls."""

    @pytest.mark.asyncio
    async def test_start_search(self):
        """Test that initiation returns a handle without immediate results."""
        router = RecordingRouter().add(SEARCH_PATH, (200, TravelpayoutsFixtures.INITIATION))
        gateway = make_gateway(router)
        request = SearchRequest.from_payload(SearchParamFixtures.ONE_WAY)

        handle = await gateway.start_search(request, "10.0.0.1")

        assert handle.search_id == TravelpayoutsFixtures.SEARCH_ID
        assert handle.gates_count == 12
        assert handle.immediate_results is None
        sent = json.loads(router.calls(SEARCH_PATH)[0].content)
        assert sent["user_ip"] == "10.0.0.1"
        assert sent["marker"] == "123456"

    @pytest.mark.asyncio
    async def test_start_search_with_immediate_results(self):
        """Test that proposals in the initiation response are kept."""
        body = dict(TravelpayoutsFixtures.INITIATION, proposals=[TravelpayoutsFixtures.proposal()])
        router = RecordingRouter().add(SEARCH_PATH, (200, body))

        handle = await make_gateway(router).start_search(
            SearchRequest.from_payload(SearchParamFixtures.ONE_WAY)
        )

        assert len(handle.immediate_results["proposals"]) == 1

    @pytest.mark.asyncio
    async def test_start_search_without_search_id(self):
        router = RecordingRouter().add(SEARCH_PATH, (200, {"error": "no"}))

        with pytest.raises(ResponseParseError):
            await make_gateway(router).start_search(SearchRequest.from_payload(SearchParamFixtures.ONE_WAY))

    @pytest.mark.asyncio
    async def test_start_search_http_error(self):
        router = RecordingRouter().add(SEARCH_PATH, (400, {"error": "Invalid signature"}))

        with pytest.raises(UpstreamHttpError) as exc_info:
            await make_gateway(router).start_search(SearchRequest.from_payload(SearchParamFixtures.ONE_WAY))

        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_fetch_results(self):
        """Test that results are requested by uuid and merged."""
        router = RecordingRouter().add(
            RESULTS_PATH,
            (200, TravelpayoutsFixtures.results([TravelpayoutsFixtures.proposal()]))
        )

        result_set = await make_gateway(router).fetch_results(TravelpayoutsFixtures.SEARCH_ID)

        assert len(result_set["proposals"]) == 1
        assert result_set["gates_info"]["42"]["label"] == "Agência Azul"
        assert router.calls(RESULTS_PATH)[0].url.params["uuid"] == TravelpayoutsFixtures.SEARCH_ID

    @pytest.mark.asyncio
    async def test_fetch_results_keeps_search_id(self):
        router = RecordingRouter().add(RESULTS_PATH, (200, []))

        result_set = await make_gateway(router).fetch_results("s-123")

        assert result_set["search_id"] == "s-123"
        assert result_set["proposals"] == []

    @pytest.mark.asyncio
    async def test_fetch_click(self):
        """Test the click request path and query parameters."""
        router = RecordingRouter().add(click_path(), (200, TravelpayoutsFixtures.CLICK_GET))

        data = await make_gateway(router).fetch_click(
            TravelpayoutsFixtures.SEARCH_ID, "4200001", currency="BRL", locale="pt-BR"
        )

        assert data["gate_name"] == "Agência Azul"
        params = router.calls(click_path())[0].url.params
        assert params["marker"] == "123456"
        assert params["currency"] == "BRL"
        assert params["locale"] == "pt-BR"

    @pytest.mark.asyncio
    async def test_fetch_click_without_url(self):
        router = RecordingRouter().add(click_path(), (200, {"method": "GET"}))

        with pytest.raises(ResponseParseError):
            await make_gateway(router).fetch_click(TravelpayoutsFixtures.SEARCH_ID, "4200001")

    @pytest.mark.asyncio
    async def test_autocomplete(self):
        """Test autocomplete asks for cities and airports."""
        router = RecordingRouter().add(AUTOCOMPLETE_PATH, (200, TravelpayoutsFixtures.AUTOCOMPLETE))

        records = await make_gateway(router).autocomplete("par")

        assert records[0]["code"] == "PAR"
        params = router.calls(AUTOCOMPLETE_PATH)[0].url.params
        assert params["term"] == "par"
        assert params["locale"] == "pt"
        assert params.get_list("types[]") == ["city", "airport"]

    @pytest.mark.asyncio
    async def test_autocomplete_rejects_non_list(self):
        router = RecordingRouter().add(AUTOCOMPLETE_PATH, (200, {"error": "x"}))

        with pytest.raises(ResponseParseError):
            await make_gateway(router).autocomplete("par")

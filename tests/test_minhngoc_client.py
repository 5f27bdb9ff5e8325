"""
Tests for the live script source.
"""
import httpx
import pytest

from lottery_ingest.clients.minhngoc import MinhNgocClient, parse_live_script
from lottery_ingest.models import Region, SourceStatus

LIVE_SCRIPT = 'kqxs.mn={run:0,tinh:"1,19,21,20",ntime:153,delay:5000};'


def make_client(settings, respond):
    requests = []

    def handler(request):
        requests.append(request)
        return respond(request)

    return MinhNgocClient(settings, transport=httpx.MockTransport(handler)), requests


class TestParseLiveScript:
    """Script body parsing"""

    def test_state_object_extracted(self):
        state = parse_live_script('var x=1;kqxs.mb={run:0,tinh:"1",delay:5000};')
        assert state == {"run": 0, "tinh": "1", "delay": 5000}

    @pytest.mark.parametrize("text", ["", "console.log(1)", "kqxs.mn={run:0,tinh:}", None])
    def test_unusable_script(self, text):
        assert parse_live_script(text) is None


class TestFetch:
    """Live fetch outcomes, none of which carry draws"""

    async def test_requests_region_script(self, settings):
        client, requests = make_client(settings, lambda req: httpx.Response(200, text=LIVE_SCRIPT))
        async with client:
            result = await client.fetch(Region.CENTRAL)

        assert requests[0].url.path.endswith("/js_m3.js")
        assert "_" in requests[0].url.params
        assert result.status is SourceStatus.NOT_AVAILABLE
        assert result.draws == []

    async def test_http_error_status(self, settings):
        client, _ = make_client(settings, lambda req: httpx.Response(404))
        async with client:
            result = await client.fetch(Region.SOUTH)
        assert result.status is SourceStatus.UNREACHABLE
        assert result.detail == "HTTP 404"

    async def test_network_failure_does_not_raise(self, settings):
        def respond(request):
            raise httpx.ConnectError("refused", request=request)

        client, _ = make_client(settings, respond)
        async with client:
            result = await client.fetch(Region.NORTH)
        assert result.status is SourceStatus.UNREACHABLE
        assert not result.has_draws

    async def test_garbage_body(self, settings):
        client, _ = make_client(settings, lambda req: httpx.Response(200, text="<html></html>"))
        async with client:
            result = await client.fetch(Region.SOUTH)
        assert result.status is SourceStatus.PARSE_ERROR

    async def test_result_payload_not_decoded(self, settings):
        body = 'kqxs.mb={run:1,result:"12345"};'
        client, _ = make_client(settings, lambda req: httpx.Response(200, text=body))
        async with client:
            result = await client.fetch(Region.NORTH)
        assert result.status is SourceStatus.UNSUPPORTED
        assert result.draws == []

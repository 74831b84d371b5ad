import httpx
import pytest
from httpx import AsyncClient
from starlette.requests import Request

from roundsync.exceptions import NetworkError
from roundsync.services.http_backend import HttpSessionBackend
from roundsync.utils.rate_limit import client_ip


def _request(headers=None, client=("10.0.0.9", 5000)):
    raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request({"type": "http", "headers": raw, "client": client})


def test_client_ip_prefers_last_forwarded_hop():
    request = _request({"X-Forwarded-For": "1.1.1.1, 2.2.2.2"})
    assert client_ip(request) == "2.2.2.2"


def test_client_ip_falls_back_to_real_ip_then_peer():
    assert client_ip(_request({"X-Real-IP": "3.3.3.3"})) == "3.3.3.3"
    assert client_ip(_request()) == "10.0.0.9"
    assert client_ip(_request(client=None)) == ""


@pytest.mark.anyio
async def test_throttled_write_is_a_transient_network_error():
    def throttle(request):
        return httpx.Response(
            429,
            json={
                "title": "Too Many Requests",
                "status": 429,
                "detail": "rate limit exceeded: 120 per 1 minute",
                "code": "rate_limit_exceeded",
            },
            headers={"content-type": "application/problem+json"},
        )

    transport = httpx.MockTransport(throttle)
    async with AsyncClient(transport=transport, base_url="http://busy/api") as client:
        backend = HttpSessionBackend(client=client)
        with pytest.raises(NetworkError):
            await backend.update_score_with_lock("s1", 0, 0, 14, 10)

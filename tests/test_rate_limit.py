"""Client IP used as the rate limit key."""
from starlette.requests import Request

from repolens.core.rate_limit import _get_client_ip, per_minute


def _request(headers=None, client=("10.0.0.5", 1234)):
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/api/jobs/analyze",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


def test_forwarded_for_wins():
    assert _get_client_ip(_request({"X-Forwarded-For": "203.0.113.7, 10.0.0.1"})) == "203.0.113.7"


def test_falls_back_to_peer_address():
    assert _get_client_ip(_request()) == "10.0.0.5"


def test_no_client_info():
    assert _get_client_ip(_request(client=None)) == "127.0.0.1"


def test_real_ip_header_when_no_forwarded_for():
    assert _get_client_ip(_request({"X-Real-IP": " 198.51.100.4 "})) == "198.51.100.4"


def test_forwarded_for_beats_real_ip():
    req = _request({"X-Forwarded-For": "203.0.113.7", "X-Real-IP": "198.51.100.4"})
    assert _get_client_ip(req) == "203.0.113.7"


def test_empty_forwarded_hops_are_skipped():
    assert _get_client_ip(_request({"X-Forwarded-For": " , 203.0.113.9"})) == "203.0.113.9"
    assert _get_client_ip(_request({"X-Forwarded-For": " , "})) == "10.0.0.5"


def test_per_minute_limit_strings():
    assert per_minute(10) == "10/minute"
    assert per_minute(0) == "1/minute"
    assert per_minute(-5) == "1/minute"

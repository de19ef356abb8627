from __future__ import annotations

import types

import pytest

from eventsfixer import ratelimit
from eventsfixer.errors import RateLimitError
from eventsfixer.ratelimit import RATE_LIMITS, rate_limit


def _request(host="192.0.2.10", headers=None):
    return types.SimpleNamespace(
        headers=headers or {}, client=types.SimpleNamespace(host=host)
    )


def test_route_classes():
    assert RATE_LIMITS["rsvp"].amount == 5
    assert RATE_LIMITS["rsvp"].get_expiry() == 60
    assert RATE_LIMITS["invites"].amount == 20
    assert RATE_LIMITS["api"].amount == 60
    assert RATE_LIMITS["api"].get_expiry() == 60


def test_rsvp_dependency_raises_after_five_requests():
    dependency = rate_limit("rsvp")
    request = _request()
    for _ in range(RATE_LIMITS["rsvp"].amount):
        dependency(request)
    with pytest.raises(RateLimitError) as excinfo:
        dependency(request)
    assert excinfo.value.status_code == 429
    assert 1 <= excinfo.value.retry_after <= 60

    ratelimit.limiter.reset()
    dependency(request)


def test_forwarded_headers_do_not_change_the_key():
    dependency = rate_limit("rsvp")
    for index in range(5):
        dependency(_request(headers={"x-forwarded-for": f"10.0.0.{index}"}))
    with pytest.raises(RateLimitError):
        dependency(_request(headers={"x-forwarded-for": "10.0.0.99"}))


def test_clients_and_route_classes_are_counted_separately():
    rsvp = rate_limit("rsvp")
    invites = rate_limit("invites")
    for _ in range(5):
        rsvp(_request(host="192.0.2.1"))
    rsvp(_request(host="192.0.2.2"))
    invites(_request(host="192.0.2.1"))
    with pytest.raises(RateLimitError):
        rsvp(_request(host="192.0.2.1"))

import pytest
import requests
from starlette.requests import Request

from escalation_desk.core.errors import CallPlacementError, InvalidPhoneNumberError
from escalation_desk.integrations.call_centre import (
    CallContext,
    SimulatedCallCentre,
    TwilioCallCentre,
)
from escalation_desk.integrations.twilio_security import compute_twilio_signature, signed_url
from escalation_desk.services.phone_numbers import mask_phone_number, normalize_phone_number

CONTEXT = CallContext(session_id="s1", ticket_id="TLK-1", issue="AI assistant unable to resolve query")


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("+27123456789", "+27123456789"),
        ("0123456789", "+27123456789"),
        ("012-345-6789", "+27123456789"),
        ("(012) 345.6789", "+27123456789"),
        ("+27 12 345 6789", "+27123456789"),
    ],
)
def test_normalize_phone_number_accepts_local_formats(raw, expected):
    assert normalize_phone_number(raw) == expected


@pytest.mark.parametrize("raw", ["", "12345", "+2712345678", "01234567890", "+44123456789", "01234abcde"])
def test_normalize_phone_number_rejects_malformed(raw):
    with pytest.raises(InvalidPhoneNumberError):
        normalize_phone_number(raw)


def test_mask_phone_number_keeps_last_four():
    assert mask_phone_number("+27123456789") == "***-***-6789"


def test_simulated_call_centre_is_reproducible_with_seed():
    first = SimulatedCallCentre("+27102100000", seed=11)
    second = SimulatedCallCentre("+27102100000", seed=11)

    assert first.check_availability() == second.check_availability()


def test_simulated_busy_queue_offers_callback_number():
    centre = SimulatedCallCentre("+27102100000", agent_availability=0.0, seed=1)

    availability = centre.check_availability()

    assert availability.agent_available is False
    assert 10 <= availability.estimated_wait_minutes <= 39
    assert availability.callback_number == "+27102100000"


def test_simulated_call_success_and_failure():
    ok = SimulatedCallCentre("+27102100000", failure_rate=0.0, seed=3).place_call("+27123456789", CONTEXT)
    assert ok.success is True
    assert ok.call_id.startswith("CALL-")
    assert 5 <= ok.estimated_connect_seconds <= 19
    assert ok.agent_id.startswith("AGENT-")

    with pytest.raises(CallPlacementError):
        SimulatedCallCentre("+27102100000", failure_rate=1.0).place_call("+27123456789", CONTEXT)


class _FakeResponse:
    def __init__(self, status_code: int, payload: dict) -> None:
        self.status_code = status_code
        self._payload = payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self) -> dict:
        return self._payload


def _twilio() -> TwilioCallCentre:
    return TwilioCallCentre(
        account_sid="AC123",
        auth_token="secret",
        from_number="+27100000000",
        call_centre_number="+27102100000",
        status_callback_url="https://desk.example.com/v1/call-centre/webhook/twilio/status",
    )


def test_twilio_call_posts_twiml_bridge(monkeypatch):
    captured = {}

    def _post(url, data, auth, timeout):
        captured.update(url=url, data=data, auth=auth)
        return _FakeResponse(201, {"sid": "CA999", "status": "queued"})

    monkeypatch.setattr(requests, "post", _post)

    result = _twilio().place_call("+27123456789", CONTEXT)

    assert result.call_id == "CA999"
    assert captured["url"] == "https://api.twilio.com/2010-04-01/Accounts/AC123/Calls.json"
    assert captured["auth"] == ("AC123", "secret")
    assert captured["data"]["To"] == "+27123456789"
    assert "<Dial>+27102100000</Dial>" in captured["data"]["Twiml"]
    assert captured["data"]["StatusCallback"].endswith("/webhook/twilio/status")


def test_twilio_http_error_becomes_call_placement_error(monkeypatch):
    monkeypatch.setattr(requests, "post", lambda *args, **kwargs: _FakeResponse(500, {}))

    with pytest.raises(CallPlacementError):
        _twilio().place_call("+27123456789", CONTEXT)


def test_twilio_network_error_becomes_call_placement_error(monkeypatch):
    def _post(*args, **kwargs):
        raise requests.ConnectionError("unreachable")

    monkeypatch.setattr(requests, "post", _post)

    with pytest.raises(CallPlacementError):
        _twilio().place_call("+27123456789", CONTEXT)


def test_signature_is_order_independent():
    url = "https://desk.example.com/v1/call-centre/webhook/twilio/status"
    a = compute_twilio_signature(url, {"CallSid": "CA1", "CallStatus": "ringing"}, "token")
    b = compute_twilio_signature(url, {"CallStatus": "ringing", "CallSid": "CA1"}, "token")

    assert a == b


def test_signed_url_drops_default_port_and_prefers_public_url():
    request = Request(
        {
            "type": "http",
            "scheme": "https",
            "server": ("desk.internal", 443),
            "path": "/v1/call-centre/webhook/twilio/status",
            "query_string": b"",
            "headers": [(b"host", b"desk.internal:443")],
        }
    )

    assert signed_url(request) == "https://desk.internal/v1/call-centre/webhook/twilio/status"
    assert signed_url(request, "https://public.example.com/cb") == "https://public.example.com/cb"

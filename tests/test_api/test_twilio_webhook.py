"""Tests for the Twilio voice webhook."""

from __future__ import annotations

from xml.etree.ElementTree import fromstring

from fastapi.testclient import TestClient

VOICE_FORM = {
    "CallSid": "CA123",
    "From": "+15551234567",
    "To": "+15557654321",
    "CallStatus": "ringing",
}


def parse_twiml(text: str):
    return fromstring(text.split("?>", 1)[1])


def stream_parameters(stream) -> dict[str, str]:
    return {p.get("name"): p.get("value") for p in stream.findall("Parameter")}


class TestTwilioVoiceWebhook:
    """Tests for POST /api/twilio/voice."""

    def test_returns_stream_twiml(self, test_client) -> None:
        response = test_client.post("/api/twilio/voice", data=VOICE_FORM)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/xml")

        root = parse_twiml(response.text)
        stream = root.find("Connect/Stream")
        assert stream.get("url") == "ws://testserver/ws/media"
        assert stream_parameters(stream) == {
            "callSid": "CA123",
            "from": "+15551234567",
            "to": "+15557654321",
        }
        assert root.find("Say") is None

    def test_uses_forwarded_headers(self, test_client) -> None:
        response = test_client.post(
            "/api/twilio/voice",
            data=VOICE_FORM,
            headers={"x-forwarded-host": "bridge.example.com", "x-forwarded-proto": "https"},
        )

        stream = parse_twiml(response.text).find("Connect/Stream")
        assert stream.get("url") == "wss://bridge.example.com/ws/media"

    def test_public_url_and_hold_message(self, app_factory) -> None:
        app = app_factory(
            public_ws_url="wss://calls.example.com/ws/media",
            hold_message="Please hold while we connect you.",
        )
        with TestClient(app) as client:
            response = client.post("/api/twilio/voice", data=VOICE_FORM)

        root = parse_twiml(response.text)
        assert root.find("Say").text == "Please hold while we connect you."
        assert root.find("Connect/Stream").get("url") == "wss://calls.example.com/ws/media"

    def test_tenant_parameter(self, test_client) -> None:
        response = test_client.post("/api/twilio/voice?tenant=acme", data=VOICE_FORM)

        stream = parse_twiml(response.text).find("Connect/Stream")
        assert stream_parameters(stream)["tenant"] == "acme"

    def test_rejects_call_at_capacity(self, app_factory) -> None:
        with TestClient(app_factory(max_concurrent_calls=0)) as client:
            response = client.post("/api/twilio/voice", data=VOICE_FORM)

        root = parse_twiml(response.text)
        assert root.find("Hangup") is not None
        assert root.find("Connect") is None

"""Twilio voice webhook.

Answers an incoming call with TwiML that connects it to the media
stream endpoint, passing the call metadata as stream parameters.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request, Response

from callbridge.api.dependencies import get_app_settings, get_registry
from callbridge.config import Settings
from callbridge.core.registry import SessionRegistry
from callbridge.logging_config import get_logger, mask_phone
from callbridge.services.telephony import TwilioCallInfo, TwilioService

router = APIRouter(prefix="/twilio", tags=["Twilio"])
logger: Any = get_logger(__name__)

MEDIA_STREAM_PATH = "/ws/media"
CAPACITY_MESSAGE = "All of our lines are busy right now. Please call back in a few minutes."


def get_twilio_service() -> TwilioService:
    """Dependency injection for TwilioService."""
    return TwilioService()


def build_stream_url(request: Request, settings: Settings) -> str:
    """Media stream URL, from settings or derived from the request.

    Uses forwarded headers when running behind a proxy.
    """
    if settings.public_ws_url:
        return settings.public_ws_url

    host = request.headers.get("x-forwarded-host") or request.headers.get("host", "localhost:8000")
    proto = request.headers.get("x-forwarded-proto", request.url.scheme)
    scheme = "wss" if proto == "https" else "ws"
    return f"{scheme}://{host}{MEDIA_STREAM_PATH}"


@router.post("/voice")
async def twilio_voice_webhook(
    request: Request,
    twilio: TwilioService = Depends(get_twilio_service),
    settings: Settings = Depends(get_app_settings),
    registry: SessionRegistry = Depends(get_registry),
) -> Response:
    """Handle an incoming call from Twilio.

    Expected form data:
    - CallSid: Unique call identifier
    - From: Caller phone number
    - To: Called phone number
    - CallStatus: current call status

    An optional ``tenant`` query parameter selects per-tenant credentials.
    """
    form_data = await request.form()
    call_info = TwilioCallInfo.from_webhook({k: str(v) for k, v in form_data.items()})

    logger.info(
        f"Incoming call {call_info.call_sid} from {mask_phone(call_info.from_number)} "
        f"to {mask_phone(call_info.to_number)} ({call_info.status})"
    )

    if registry.active_count >= settings.max_concurrent_calls:
        logger.warning(f"Call {call_info.call_sid} rejected: system at capacity")
        return Response(
            content=twilio.generate_hangup_xml(reason=CAPACITY_MESSAGE),
            media_type="application/xml",
        )

    parameters = {
        "callSid": call_info.call_sid,
        "from": call_info.from_number,
        "to": call_info.to_number,
    }
    tenant = request.query_params.get("tenant") or settings.default_tenant
    if tenant:
        parameters["tenant"] = tenant

    xml_response = twilio.generate_stream_xml(
        websocket_url=build_stream_url(request, settings),
        parameters=parameters,
        say=settings.hold_message,
    )

    logger.debug(f"Returning stream TwiML for {call_info.call_sid}")
    return Response(content=xml_response, media_type="application/xml")

import base64
import hashlib
import hmac
import logging
from collections.abc import Mapping

from fastapi import Header, HTTPException, Request

from escalation_desk.core.config import get_settings

logger = logging.getLogger(__name__)

_DEFAULT_PORTS = {"http": 80, "https": 443}


def compute_twilio_signature(url: str, params: Mapping[str, str], auth_token: str) -> str:
    payload = url + "".join(f"{key}{params[key]}" for key in sorted(params))
    digest = hmac.new(auth_token.encode("utf-8"), payload.encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("utf-8")


def signed_url(request: Request, public_callback_url: str | None = None) -> str:
    """
    The URL Twilio computed its signature over.

    Calls are placed with an explicit status callback URL, so when one is configured that
    is what Twilio signed, whatever host a proxy forwarded the request to. Otherwise the
    request URL is used without default ports.
    """
    if public_callback_url:
        return public_callback_url

    url = request.url
    port = url.port if url.port and url.port != _DEFAULT_PORTS.get(url.scheme) else None
    netloc = f"{url.hostname}:{port}" if port else (url.hostname or "")
    query = f"?{url.query}" if url.query else ""
    return f"{url.scheme}://{netloc}{url.path}{query}"


async def verified_call_status_form(
    request: Request,
    twilio_signature: str | None = Header(default=None, alias="X-Twilio-Signature"),
) -> dict[str, str]:
    """Read the posted call status form, rejecting it unless Twilio signed every field."""
    form = await request.form()
    params = {key: str(value) for key, value in form.items()}

    settings = get_settings()
    if not settings.twilio_validate_signatures:
        return params
    if not settings.twilio_auth_token:
        raise HTTPException(status_code=500, detail="Twilio signature validation enabled without auth token")
    if not twilio_signature:
        raise HTTPException(status_code=401, detail="Missing Twilio signature")

    url = signed_url(request, settings.twilio_status_callback_url)
    expected = compute_twilio_signature(url, params, settings.twilio_auth_token)
    if not hmac.compare_digest(twilio_signature, expected):
        logger.warning(
            "Rejected call status update with invalid signature",
            extra={"path": request.url.path, "call_id": params.get("CallSid", "-")},
        )
        raise HTTPException(status_code=401, detail="Invalid Twilio signature")
    return params

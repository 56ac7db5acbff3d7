import logging

from fastapi import APIRouter, Depends, Form

from escalation_desk.integrations.twilio_security import verified_call_status_form

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/call-centre", tags=["call-centre"])


@router.post("/webhook/twilio/status")
def twilio_call_status(
    call_sid: str = Form(alias="CallSid"),
    call_status: str = Form(alias="CallStatus"),
    call_duration: str = Form(default="", alias="CallDuration"),
    _params: dict[str, str] = Depends(verified_call_status_form),
) -> dict:
    # Call progress is informational; ticket status only changes through the admin API.
    logger.info(
        "Call status update",
        extra={"call_id": call_sid, "call_status": call_status, "call_duration": call_duration or "-"},
    )
    return {"status": "ok"}

import logging
import random
import secrets
import string
import time
from dataclasses import dataclass, field
from typing import Protocol

import requests

from escalation_desk.core.config import Settings
from escalation_desk.core.errors import CallPlacementError
from escalation_desk.integrations.twilio_xml import twiml_say_and_dial
from escalation_desk.services.phone_numbers import mask_phone_number

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase


@dataclass(frozen=True)
class AgentAvailability:
    agent_available: bool
    estimated_wait_minutes: int
    callback_number: str | None = None


@dataclass(frozen=True)
class CallContext:
    session_id: str
    ticket_id: str
    issue: str
    urgency: str = "medium"
    customer_name: str | None = None
    key_issues: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class CallPlacementResult:
    success: bool
    call_id: str
    status: str
    estimated_connect_seconds: int
    agent_id: str | None
    message: str


class CallCentre(Protocol):
    def check_availability(self) -> AgentAvailability: ...

    def place_call(self, destination: str, context: CallContext) -> CallPlacementResult: ...


def new_call_id() -> str:
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"CALL-{int(time.time() * 1000)}-{suffix}"


class SimulatedCallCentre:
    """Stand-in provider with a randomized queue; seed it for reproducible runs."""

    def __init__(
        self,
        call_centre_number: str,
        agent_availability: float = 0.7,
        failure_rate: float = 0.02,
        seed: int | None = None,
    ) -> None:
        self.call_centre_number = call_centre_number
        self.agent_availability = agent_availability
        self.failure_rate = failure_rate
        self._random = random.Random(seed)

    def check_availability(self) -> AgentAvailability:
        available = self._random.random() < self.agent_availability
        if available:
            return AgentAvailability(agent_available=True, estimated_wait_minutes=self._random.randint(1, 5))
        return AgentAvailability(
            agent_available=False,
            estimated_wait_minutes=self._random.randint(10, 39),
            callback_number=self.call_centre_number,
        )

    def place_call(self, destination: str, context: CallContext) -> CallPlacementResult:
        if self._random.random() < self.failure_rate:
            raise CallPlacementError("Phone service temporarily unavailable")

        call_id = new_call_id()
        connect_seconds = self._random.randint(5, 19)
        agent_id = f"AGENT-{self._random.randint(1, 100)}"
        logger.info(
            "Simulated call initiated",
            extra={
                "call_id": call_id,
                "ticket_id": context.ticket_id,
                "destination": mask_phone_number(destination),
                "urgency": context.urgency,
            },
        )
        return CallPlacementResult(
            success=True,
            call_id=call_id,
            status="initiated",
            estimated_connect_seconds=connect_seconds,
            agent_id=agent_id,
            message=(
                f"Call initiated successfully. You will receive a call from {self.call_centre_number} "
                f"within {connect_seconds} seconds. Agent {agent_id} will assist you."
            ),
        )


class TwilioCallCentre:
    """Places the customer call through Twilio's REST Calls resource and bridges it to the call centre."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        call_centre_number: str,
        api_base_url: str = "https://api.twilio.com/2010-04-01",
        status_callback_url: str | None = None,
        timeout_seconds: float = 10.0,
        estimated_connect_seconds: int = 15,
    ) -> None:
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.call_centre_number = call_centre_number
        self.api_base_url = api_base_url.rstrip("/")
        self.status_callback_url = status_callback_url
        self.timeout_seconds = timeout_seconds
        self.estimated_connect_seconds = estimated_connect_seconds

    def check_availability(self) -> AgentAvailability:
        # Twilio has no view of agent queues; report the configured connect estimate.
        return AgentAvailability(
            agent_available=True,
            estimated_wait_minutes=max(1, round(self.estimated_connect_seconds / 60)),
        )

    def place_call(self, destination: str, context: CallContext) -> CallPlacementResult:
        greeting = f"Connecting you to a support agent about ticket {context.ticket_id}."
        data = {
            "To": destination,
            "From": self.from_number,
            "Twiml": twiml_say_and_dial(greeting, self.call_centre_number),
        }
        if self.status_callback_url:
            data["StatusCallback"] = self.status_callback_url
            data["StatusCallbackEvent"] = "initiated ringing answered completed"

        url = f"{self.api_base_url}/Accounts/{self.account_sid}/Calls.json"
        try:
            response = requests.post(
                url,
                data=data,
                auth=(self.account_sid, self.auth_token),
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise CallPlacementError(f"Twilio call creation failed: {exc}") from exc

        call_id = payload.get("sid") or new_call_id()
        logger.info(
            "Twilio call created",
            extra={
                "call_id": call_id,
                "ticket_id": context.ticket_id,
                "destination": mask_phone_number(destination),
                "twilio_status": payload.get("status"),
            },
        )
        return CallPlacementResult(
            success=True,
            call_id=call_id,
            status="initiated",
            estimated_connect_seconds=self.estimated_connect_seconds,
            agent_id=None,
            message=(
                f"Call initiated. You should receive a call from {self.from_number} "
                f"within {self.estimated_connect_seconds} seconds."
            ),
        )


def build_call_centre(settings: Settings) -> CallCentre:
    if settings.call_provider == "twilio":
        if not (settings.twilio_account_sid and settings.twilio_auth_token and settings.twilio_phone_number):
            raise ValueError("Twilio call provider requires account SID, auth token and phone number")
        return TwilioCallCentre(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            from_number=settings.twilio_phone_number,
            call_centre_number=settings.call_centre_number,
            api_base_url=settings.twilio_api_base_url,
            status_callback_url=settings.twilio_status_callback_url,
            timeout_seconds=settings.twilio_request_timeout_seconds,
            estimated_connect_seconds=settings.twilio_estimated_connect_seconds,
        )
    return SimulatedCallCentre(
        call_centre_number=settings.call_centre_number,
        agent_availability=settings.simulated_agent_availability,
        failure_rate=settings.simulated_call_failure_rate,
        seed=settings.simulated_random_seed,
    )

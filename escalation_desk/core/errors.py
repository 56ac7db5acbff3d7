class EscalationDeskError(Exception):
    """Base class for errors raised by the triage engine."""


class InvalidRequestError(EscalationDeskError):
    """A required field is missing or malformed."""


class InvalidPhoneNumberError(InvalidRequestError):
    pass


class TicketNotFoundError(EscalationDeskError):
    def __init__(self, ticket_id: str) -> None:
        super().__init__(f"Ticket not found: {ticket_id}")
        self.ticket_id = ticket_id


class CallPlacementError(EscalationDeskError):
    """The call-placement provider could not start the call."""

from typing import Any, Union

from goalpush.core.errors import GatewayRateLimited, PermanentDeviceError
from goalpush.schemas.enums import TicketOutcome
from goalpush.schemas.push import ErrorTicket, PushTicket, parse_ticket


def classify_ticket(ticket: Union[PushTicket, dict, Any]) -> TicketOutcome:
    """Map one gateway ticket to an outcome. Pure: no I/O, no mutation."""
    ticket = parse_ticket(ticket)

    # unknown non-error shapes count as delivered
    if not isinstance(ticket, ErrorTicket):
        return TicketOutcome.sent

    code = ticket.error_code
    if code == PermanentDeviceError.code:
        return TicketOutcome.device_removed
    if code == GatewayRateLimited.code:
        return TicketOutcome.rate_limited
    return TicketOutcome.failed


def ticket_error_message(ticket: Union[PushTicket, dict, Any]) -> str:
    ticket = parse_ticket(ticket)
    if not isinstance(ticket, ErrorTicket):
        return ""
    return ticket.error_code or ticket.message or "Unknown error"

# tests/test_ticket_classifier.py

import pytest

from goalpush.schemas.enums import TicketOutcome
from goalpush.schemas.push import ErrorTicket, SuccessTicket, parse_ticket
from goalpush.services.ticket_classifier import classify_ticket, ticket_error_message


@pytest.mark.parametrize("ticket, expected", [
    ({"status": "ok", "id": "A"}, TicketOutcome.sent),
    ({"status": "error", "details": {"error": "DeviceNotRegistered"}}, TicketOutcome.device_removed),
    ({"status": "error", "details": {"error": "MessageRateExceeded"}}, TicketOutcome.rate_limited),
    ({"status": "error", "details": {"error": "InvalidCredentials"}}, TicketOutcome.failed),
    ({"status": "error", "message": "x"}, TicketOutcome.failed),
])
def test_classify(ticket, expected):
    assert classify_ticket(ticket) is expected


def test_unknown_status_counts_as_sent():
    assert classify_ticket({"status": "queued"}) is TicketOutcome.sent


def test_malformed_ticket_fails():
    assert classify_ticket("garbage") is TicketOutcome.failed
    assert classify_ticket(None) is TicketOutcome.failed


def test_accepts_parsed_tickets():
    assert classify_ticket(SuccessTicket(id="A")) is TicketOutcome.sent
    assert classify_ticket(ErrorTicket(message="boom")) is TicketOutcome.failed


def test_non_dict_details_are_ignored():
    ticket = parse_ticket({"status": "error", "message": "bad", "details": "oops"})
    assert isinstance(ticket, ErrorTicket)
    assert ticket.error_code is None


class TestErrorMessage:

    def test_prefers_error_code(self):
        ticket = {"status": "error", "message": "device gone", "details": {"error": "DeviceNotRegistered"}}
        assert ticket_error_message(ticket) == "DeviceNotRegistered"

    def test_falls_back_to_message(self):
        assert ticket_error_message({"status": "error", "message": "device gone"}) == "device gone"

    def test_falls_back_to_unknown(self):
        assert ticket_error_message({"status": "error"}) == "Unknown error"

    def test_success_has_no_message(self):
        assert ticket_error_message({"status": "ok", "id": "A"}) == ""

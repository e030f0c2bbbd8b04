from __future__ import annotations

import re
from typing import Callable, Optional
from urllib.parse import urlparse


# PROJECT-NUMBER, e.g. SCOP-67702
TICKET_KEY_PATTERN = re.compile(r"^[A-Z]+-[0-9]+$")

# Supplied by the ticketing collaborator. Returns None when the ticket exists,
# raises (any exception) when it does not or cannot be checked.
TicketValidator = Callable[[str], None]


class ValidationError(ValueError):
    """400-level input problem. Raised before any mutation."""


class LifecycleError(ValidationError):
    """A lifecycle rule was violated (wrong status for the requested operation)."""


class IllegalTransitionError(LifecycleError):
    """The requested stage is not the unique next stage for the shipment."""


class ConflictError(ValueError):
    """409-level business rule conflict."""


class ReceptionReportAlreadyApprovedError(ConflictError):
    """Approval was requested for a report that is already approved."""


class ConcurrencyConflictError(ConflictError):
    """
    A conditional write matched zero rows: the record changed state between
    read and write. The caller decides whether to retry or report it.
    """


class NotFoundError(LookupError):
    """404-level: an id did not resolve."""


def is_valid_ticket_format(ticket_key: str | None) -> bool:
    if not ticket_key:
        return False
    return TICKET_KEY_PATTERN.match(ticket_key) is not None


def validate_ticket_key(ticket_key: str | None, ticket_validator: Optional[TicketValidator] = None) -> None:
    """
    Check the ticket key format and, when a validator is supplied, its existence.

    A None validator skips the existence check (seed/sample data).
    """
    if not ticket_key:
        raise ValidationError("JIRA ticket number is required")
    if not is_valid_ticket_format(ticket_key):
        raise ValidationError(
            "JIRA ticket number must be in format PROJECT-NUMBER (e.g., SCOP-67702)"
        )
    if ticket_validator is None:
        return
    try:
        ticket_validator(ticket_key)
    except Exception as exc:
        raise ValidationError(f"JIRA ticket {ticket_key} could not be verified: {exc}") from exc


def is_http_url(value: str | None) -> bool:
    if value is None:
        return False
    raw = value.strip()
    if not raw or " " in raw:
        return False
    parsed = urlparse(raw)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)

"""
Quote status state machine.

Every status change in the codebase asks next_status() first. The table
below is the only place legal transitions are defined; adding a status or
action means touching _TRANSITIONS and _REJECTIONS and nothing else.

    draft --edit--> draft
    draft --send--> sent
    sent --accept--> accepted
    sent --decline--> declined
    accepted --mark_paid--> paid

declined and paid are terminal. accepted is terminal for everything except
the payment event. Deletion is not a transition and is allowed from any
status.
"""

from enum import Enum

from core.exceptions import IllegalTransitionError
from core.models.quote import QuoteStatus


class QuoteAction(str, Enum):
    """Something a caller asks to do to a quote."""

    EDIT = "edit"            # owner changes content or line items
    SEND = "send"            # owner locks content and shares it
    ACCEPT = "accept"        # recipient, token-gated
    DECLINE = "decline"      # recipient, token-gated
    MARK_PAID = "mark_paid"  # payment processor event only


_TRANSITIONS: dict[tuple[QuoteStatus, QuoteAction], QuoteStatus] = {
    (QuoteStatus.DRAFT, QuoteAction.EDIT): QuoteStatus.DRAFT,
    (QuoteStatus.DRAFT, QuoteAction.SEND): QuoteStatus.SENT,
    (QuoteStatus.SENT, QuoteAction.ACCEPT): QuoteStatus.ACCEPTED,
    (QuoteStatus.SENT, QuoteAction.DECLINE): QuoteStatus.DECLINED,
    (QuoteStatus.ACCEPTED, QuoteAction.MARK_PAID): QuoteStatus.PAID,
}

_REJECTIONS: dict[QuoteAction, str] = {
    QuoteAction.EDIT: "Only draft quotes can be edited",
    QuoteAction.SEND: "Only draft quotes can be sent",
    QuoteAction.ACCEPT: "Quote is no longer available for response",
    QuoteAction.DECLINE: "Quote is no longer available for response",
    QuoteAction.MARK_PAID: "Quote must be accepted before payment",
}

# Status each action must find in the row; used as the conditional-write predicate.
REQUIRED_STATUS: dict[QuoteAction, QuoteStatus] = {
    action: status for (status, action) in _TRANSITIONS
}


def next_status(current: QuoteStatus, action: QuoteAction) -> QuoteStatus:
    """
    Resolve the status an action leads to.

    Raises:
        IllegalTransitionError: action not permitted from current status
    """
    target = _TRANSITIONS.get((QuoteStatus(current), action))
    if target is None:
        raise IllegalTransitionError(_REJECTIONS[action], action=action.value)
    return target


def is_allowed(current: QuoteStatus, action: QuoteAction) -> bool:
    return (QuoteStatus(current), action) in _TRANSITIONS


def rejection_message(action: QuoteAction) -> str:
    """User-facing message for an action that lost its precondition."""
    return _REJECTIONS[action]


def is_terminal(status: QuoteStatus) -> bool:
    """No action leads anywhere from this status."""
    return not any(source == status for (source, _action) in _TRANSITIONS)

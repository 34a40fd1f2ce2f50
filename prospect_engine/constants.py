"""Engagement vocabulary shared by the policy, the engine and the API.

Event type strings are produced by upstream collaborators (dashboard actions,
email-provider webhooks) and must stay byte-for-byte stable.
"""

from enum import Enum


class EventType(str, Enum):
    EMAIL_SENT = "email_sent"
    EMAIL_OPENED = "email_opened"
    EMAIL_CLICKED = "email_clicked"
    EMAIL_REPLIED = "email_replied"
    EMAIL_BOUNCED = "email_bounced"
    CALL_MADE = "call_made"
    MEETING_SCHEDULED = "meeting_scheduled"
    NOTE_ADDED = "note_added"


KNOWN_EVENT_TYPES = frozenset(e.value for e in EventType)

# Raw interaction counters incremented by their event type
COUNTER_FIELDS = {
    EventType.EMAIL_OPENED.value: "opens",
    EventType.EMAIL_CLICKED.value: "clicks",
    EventType.EMAIL_REPLIED.value: "replies",
}


class ProspectStatus(str, Enum):
    COLD = "cold"
    CONTACTED = "contacted"
    REPLIED = "replied"
    INTERESTED = "interested"
    QUALIFIED = "qualified"
    HANDOFF = "handoff"
    BOUNCED = "bounced"


KNOWN_STATUSES = frozenset(s.value for s in ProspectStatus)

# Forward funnel position; bounced sits outside the chain
STATUS_ORDER = {
    ProspectStatus.COLD.value: 0,
    ProspectStatus.CONTACTED.value: 1,
    ProspectStatus.REPLIED.value: 2,
    ProspectStatus.INTERESTED.value: 3,
    ProspectStatus.QUALIFIED.value: 4,
    ProspectStatus.HANDOFF.value: 5,
    ProspectStatus.BOUNCED.value: -1,
}

# Statuses the decay sweep never touches
DECAY_EXEMPT_STATUSES = frozenset({ProspectStatus.BOUNCED.value, ProspectStatus.HANDOFF.value})

STATUS_LABELS = {
    ProspectStatus.COLD.value: "Cold",
    ProspectStatus.CONTACTED.value: "Contacted",
    ProspectStatus.REPLIED.value: "Replied",
    ProspectStatus.INTERESTED.value: "Interested",
    ProspectStatus.QUALIFIED.value: "Qualified",
    ProspectStatus.HANDOFF.value: "Hand-off",
    ProspectStatus.BOUNCED.value: "Bounced",
}


class Trigger(str, Enum):
    """What caused a scoring transition."""

    EVENT = "event"
    DECAY = "decay"
    MANUAL = "manual"

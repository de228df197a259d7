"""Forwarded-content extraction and recipient resolution.

These functions derive data from a message body; derived fields are
recomputed whenever the body is reprocessed and never fetched independently.
"""

from mailsift.models import Message

from .forwarded import distinct_sub_messages, extract_forwarded
from .recipients import find_addresses, resolve_recipients


def reprocess(message: Message) -> Message:
    """Return a copy of ``message`` with extracted sub-messages and recipients recomputed."""

    extracted = extract_forwarded(message.body)
    staged = message.model_copy(update={"extracted": extracted})
    return staged.model_copy(update={"recipients": resolve_recipients(staged)})


__all__ = [
    "distinct_sub_messages",
    "extract_forwarded",
    "find_addresses",
    "reprocess",
    "resolve_recipients",
]

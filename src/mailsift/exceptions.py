"""Custom exceptions for mailsift."""

from __future__ import annotations


class MailsiftError(Exception):
    """Base exception for all mailsift errors."""


class ConfigurationError(MailsiftError):
    """Exception raised for configuration related errors."""


class TransientNetworkError(MailsiftError):
    """An upstream call failed in a way that may succeed on the next scheduled tick."""


class ReauthorizationRequired(MailsiftError):
    """The stored grant was rejected; an operator must complete a new OAuth consent."""


class PartialFetchFailure(MailsiftError):
    """A single message's detail could not be retrieved."""

    def __init__(self, message_id: str, reason: str) -> None:
        super().__init__(f"Failed to fetch message {message_id}: {reason}")
        self.message_id = message_id
        self.reason = reason


class MalformedBody(MailsiftError):
    """A message body could not be decoded."""

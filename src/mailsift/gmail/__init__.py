"""Gmail API access: OAuth token lifecycle, message retrieval and payload decoding."""

from .client import GmailClient
from .mime import decode_base64url, decode_body
from .parsing import message_to_domain

__all__ = ["GmailClient", "decode_base64url", "decode_body", "message_to_domain"]

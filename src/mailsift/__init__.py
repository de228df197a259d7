"""mailsift - recipient search over a Gmail mailbox.

This package keeps a local corpus of recent Gmail messages, extracts
recipients from headers and forwarded content, and searches that corpus by
address, alias or domain fragment.
"""

__version__ = "0.1.0"

from mailsift.config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__"]

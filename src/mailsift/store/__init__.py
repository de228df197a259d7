"""Persistence for credentials and the message corpus.

Both live in one local SQLite file used purely as a record store.
"""

from .corpus import CorpusRepository, CorpusStats, DomainBucket
from .credentials import CredentialRepository
from .database import Database
from .merge import changed_messages, fingerprint, merge

__all__ = [
    "CorpusRepository",
    "CorpusStats",
    "CredentialRepository",
    "Database",
    "DomainBucket",
    "changed_messages",
    "fingerprint",
    "merge",
]

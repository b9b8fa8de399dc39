"""
Credentials Module
==================
Encrypted storage of per-tenant channel credentials.
"""

from .models import ChannelCredential
from .cipher import CredentialCipher, derive_key
from .repository import (
    CredentialRepository,
    InMemoryCredentialRepository,
    RedisCredentialRepository,
)
from .store import CredentialStore

__all__ = [
    "ChannelCredential",
    "CredentialCipher",
    "derive_key",
    "CredentialRepository",
    "InMemoryCredentialRepository",
    "RedisCredentialRepository",
    "CredentialStore",
]

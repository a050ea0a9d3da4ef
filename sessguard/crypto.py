"""
Encryption at rest for session records.
"""

from __future__ import annotations

import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from .faults import SessionStoreCorruptedFault

logger = logging.getLogger("sessguard.crypto")


class RecordEncryptor:
    """
    Encrypts / decrypts serialized session records using Fernet (AES-128-CBC + HMAC).

    Tampered or foreign ciphertext surfaces as SessionStoreCorruptedFault.
    """

    def __init__(self, key: Optional[bytes | str] = None):
        if isinstance(key, str):
            key = key.encode()
        self._key = key or Fernet.generate_key()
        self._fernet = Fernet(self._key)

    def encrypt(self, data: bytes) -> bytes:
        return self._fernet.encrypt(data)

    def decrypt(self, token: bytes) -> bytes:
        try:
            return self._fernet.decrypt(token)
        except InvalidToken:
            logger.error("Session record failed authentication")
            raise SessionStoreCorruptedFault(cause="record failed decryption")

    @property
    def key(self) -> bytes:
        return self._key

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode()

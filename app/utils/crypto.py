"""Encryption of integration credentials at rest."""

from __future__ import annotations

import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken

from app.errors import ConfigurationError


class CredentialCipher:
    """Fernet cipher keyed from the APP_DATA_KEY secret."""

    def __init__(self, secret: str) -> None:
        if not secret or not secret.strip():
            raise ConfigurationError(
                "APP_DATA_KEY environment variable is required to store integration credentials."
            )
        digest = hashlib.sha256(secret.encode("utf-8")).digest()
        self._fernet = Fernet(base64.urlsafe_b64encode(digest))

    def encrypt(self, plaintext: str | None) -> str | None:
        if not plaintext:
            return None
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, token: str | None) -> str | None:
        if not token:
            return None
        try:
            return self._fernet.decrypt(token.encode("ascii")).decode("utf-8")
        except InvalidToken as exc:
            raise ValueError("Stored credential could not be decrypted with APP_DATA_KEY.") from exc

from typing import Optional
from cryptography.fernet import Fernet, InvalidToken


class TokenCipher:
    """Encrypts Plaid access tokens before they are written to the database."""

    def __init__(self, key: Optional[str]):
        if not key:
            raise ValueError("FERNET_KEY environment variable is not set")
        self._fernet = Fernet(key.encode() if isinstance(key, str) else key)

    def encrypt(self, data: str) -> bytes:
        return self._fernet.encrypt(data.encode())

    def decrypt(self, token: bytes) -> str:
        try:
            return self._fernet.decrypt(token).decode()
        except InvalidToken as e:
            raise ValueError("Stored access token could not be decrypted") from e

"""Encryption of the session token kept in the browser cookie.

The signed JWT is wrapped in a compact JWE (``dir`` + ``A256GCM``) so the
cookie is unreadable and unforgeable by the client. The 32 byte key is
derived from the configured secret: longer secrets are truncated, shorter
ones are repeated until the key is full.
"""

from typing import Optional

from jose import jwe
from jose.exceptions import JOSEError

KEY_LENGTH = 32
TOKEN_COOKIE = "token"


class TokenCryptoError(Exception):
    pass


class MissingKey(TokenCryptoError):
    pass


class DecryptFailure(TokenCryptoError):
    pass


def derive_key(secret: Optional[str]) -> bytes:
    if not secret:
        raise MissingKey("No secret configured for token encryption")
    raw = secret.encode("utf-8")
    if len(raw) >= KEY_LENGTH:
        return raw[:KEY_LENGTH]
    return (raw * (KEY_LENGTH // len(raw) + 1))[:KEY_LENGTH]


def encrypt_token(plaintext: str, secret: Optional[str]) -> str:
    key = derive_key(secret)
    token = jwe.encrypt(plaintext.encode("utf-8"), key, algorithm="dir", encryption="A256GCM")
    return token.decode("ascii") if isinstance(token, bytes) else token


def decrypt_token(opaque: str, secret: Optional[str]) -> str:
    key = derive_key(secret)
    try:
        plaintext = jwe.decrypt(opaque, key)
    except (JOSEError, ValueError, TypeError) as e:
        raise DecryptFailure("Token could not be decrypted") from e
    if plaintext is None:
        raise DecryptFailure("Token could not be decrypted")
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptFailure("Token could not be decrypted") from e

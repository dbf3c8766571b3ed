"""Summary: At-rest obfuscation for stored OAuth tokens.

Importance: Keeps access and refresh tokens from sitting in the database as plain text.
Alternatives: Use a secrets manager or a proper encryption library with key rotation.
"""

from __future__ import annotations

import base64
import hashlib
import hmac


_PREFIX = "v1:"


class TokenCodec:
    """Summary: Reversible token encoder keyed by the deployment token secret.

    Importance: Lets the credential store seal tokens without new dependencies.
    Alternatives: Store tokens in plain text and rely on database access control.
    """

    def __init__(self, secret: str) -> None:
        self._secret = secret.encode("utf-8")

    def encode(self, plaintext: str) -> str:
        """Summary: Seal a token for storage.

        Importance: Without a configured secret tokens are stored unchanged.
        Alternatives: Refuse to start when no secret is configured.
        """

        if not self._secret:
            return plaintext
        raw = plaintext.encode("utf-8")
        sealed = _xor(raw, _keystream(self._secret, len(raw)))
        return _PREFIX + base64.urlsafe_b64encode(sealed).decode("ascii")

    def decode(self, payload: str) -> str:
        """Summary: Recover a token sealed by ``encode``.

        Importance: Rows written before a secret was configured still decode.
        Alternatives: Require a data migration when the secret changes.
        """

        if not payload.startswith(_PREFIX) or not self._secret:
            return payload
        sealed = base64.urlsafe_b64decode(payload[len(_PREFIX):].encode("ascii"))
        return _xor(sealed, _keystream(self._secret, len(sealed))).decode("utf-8")


def _xor(data: bytes, key: bytes) -> bytes:
    return bytes(left ^ right for left, right in zip(data, key))


def _keystream(secret: bytes, length: int) -> bytes:
    blocks: list[bytes] = []
    counter = 0
    while sum(len(block) for block in blocks) < length:
        blocks.append(hmac.new(secret, counter.to_bytes(8, "big"), hashlib.sha256).digest())
        counter += 1
    return b"".join(blocks)[:length]

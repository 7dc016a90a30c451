"""Signed, expiring download tokens.

A token is a compact HS256 JWS carrying the selected item ids and the issue
time in unix milliseconds. Nothing is stored server-side: the token is the
only record of what was requested, and expiry is derived from ``iat`` plus
the validity window rather than from an ``exp`` claim.
"""

import hashlib
import secrets
import time
from dataclasses import dataclass
from typing import Callable, Iterable, List, Tuple

from jose import jwt, JWTError

from constants import TOKEN_ALGORITHM
from core.logging import get_logger
from .exceptions import InvalidInput, TokenExpired, TokenInvalid

logger = get_logger(__name__)

# Registered-claim checks are done by hand below so that malformed values
# surface as TokenInvalid instead of a library-specific error.
_DECODE_OPTIONS = {
    "verify_signature": True,
    "verify_aud": False,
    "verify_iat": False,
    "verify_exp": False,
    "verify_nbf": False,
    "verify_iss": False,
    "verify_sub": False,
    "verify_jti": False,
    "verify_at_hash": False,
}


@dataclass(frozen=True)
class DownloadClaims:
    """Verified contents of a download token."""
    item_ids: Tuple[str, ...]
    issued_at_ms: int
    expires_at_ms: int
    nonce: str

    @property
    def issued_at(self) -> float:
        return self.issued_at_ms / 1000

    @property
    def expires_at(self) -> float:
        return self.expires_at_ms / 1000


def cache_key_for(token: str) -> str:
    """Digest of the token text, used as the archive cache key."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _to_millis(timestamp: float) -> int:
    return int(round(timestamp * 1000))


def normalize_item_ids(item_ids: Iterable) -> List[str]:
    """Stringify, strip and de-duplicate ids while keeping first-seen order."""
    seen = set()
    normalized = []
    for raw in item_ids:
        item_id = str(raw).strip()
        if not item_id or item_id in seen:
            continue
        seen.add(item_id)
        normalized.append(item_id)
    return normalized


class DownloadTokenCodec:
    """Issues and verifies download tokens with a server-held secret."""

    def __init__(self, secret: str, validity_seconds: int, max_items: int,
                 clock: Callable[[], float] = time.time):
        if not secret:
            raise ValueError("Download token secret must not be empty")
        self._secret = secret
        self._algorithm = TOKEN_ALGORITHM
        self.validity_seconds = validity_seconds
        self.max_items = max_items
        self._clock = clock

    def issue(self, item_ids: Iterable) -> str:
        """Create a token for ``item_ids``.

        The validity window is the codec's configured one. It is applied on
        verification and is not carried in the token.
        """
        ids = normalize_item_ids(item_ids)
        if not ids:
            raise InvalidInput("no item ids given")
        if len(ids) > self.max_items:
            raise InvalidInput(f"{len(ids)} items requested, limit is {self.max_items}")

        issued_at_ms = _to_millis(self._clock())
        payload = {
            "ids": ids,
            "iat": issued_at_ms,
            "jti": secrets.token_hex(8),
        }
        token = jwt.encode(payload, self._secret, algorithm=self._algorithm)
        logger.info("Download token issued",
                    item_count=len(ids),
                    issued_at_ms=issued_at_ms,
                    valid_for=self.validity_seconds)
        return token

    def verify(self, token: str) -> DownloadClaims:
        """Verify signature and expiry and return the decoded claims."""
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options=_DECODE_OPTIONS,
            )
        except (JWTError, ValueError, TypeError) as e:
            logger.debug("Token verification failed", error=str(e))
            raise TokenInvalid("signature or encoding check failed") from e

        claims = self._parse_claims(payload)
        if self._clock() * 1000 > claims.expires_at_ms:
            raise TokenExpired(f"token expired at {claims.expires_at_ms}ms")
        return claims

    def _parse_claims(self, payload) -> DownloadClaims:
        if not isinstance(payload, dict):
            raise TokenInvalid("payload is not an object")

        ids = payload.get("ids")
        if not isinstance(ids, list) or not ids:
            raise TokenInvalid("ids claim missing or empty")
        if not all(isinstance(i, str) and i for i in ids):
            raise TokenInvalid("ids claim must contain non-empty strings")
        if len(set(ids)) != len(ids):
            raise TokenInvalid("ids claim contains duplicates")

        issued_at_ms = payload.get("iat")
        # bool is an int subclass
        if not isinstance(issued_at_ms, int) or isinstance(issued_at_ms, bool):
            raise TokenInvalid("iat claim missing or not an integer")

        nonce = payload.get("jti")
        if not isinstance(nonce, str):
            raise TokenInvalid("jti claim missing")

        return DownloadClaims(
            item_ids=tuple(ids),
            issued_at_ms=issued_at_ms,
            expires_at_ms=issued_at_ms + self.validity_seconds * 1000,
            nonce=nonce,
        )

    @staticmethod
    def cache_key(token: str) -> str:
        return cache_key_for(token)

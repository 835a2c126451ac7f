"""
Integrity Digest

Fingerprints the canonical serialization of a backup payload so that
corruption can be detected on restore.

The digest is a corruption detector, NOT an authenticator. Anyone who
can write the remote document can also rewrite its digest. If hashing
fails we fall back to a timestamp-derived string, which is why every
caller treats a mismatch as a warning rather than an error.
"""

import hashlib
import json
import time
from typing import Any

import structlog


FALLBACK_PREFIX = "fallback_hash_"

logger = structlog.get_logger("aivest_backup.digest")


def canonical_json(payload: Any) -> str:
    """
    Deterministic JSON form of a payload.

    Sorted keys and compact separators, so two equal dicts always
    serialize to the same string regardless of insertion order.
    """
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


class IntegrityDigest:
    """SHA-256 over UTF-8 text, with a non-raising fallback."""

    algorithm = "sha256"

    def _hash(self, serialized: str) -> str:
        return hashlib.new(self.algorithm, serialized.encode("utf-8")).hexdigest()

    def digest(self, serialized: str) -> str:
        """
        Fixed-length hex digest of serialized.

        Never raises. Returns `fallback_hash_<epoch millis>` if the
        hash primitive fails.
        """
        if not isinstance(serialized, str):
            logger.warning("digest_input_not_string", input_type=type(serialized).__name__)
            serialized = canonical_json(serialized)
        try:
            return self._hash(serialized)
        except Exception as e:
            logger.error("digest_failed", algorithm=self.algorithm, error=str(e))
            return f"{FALLBACK_PREFIX}{int(time.time() * 1000)}"

    def verify(self, serialized: str, expected: str) -> bool:
        """Advisory comparison; callers must not abort on False."""
        return self.digest(serialized) == expected

    @staticmethod
    def is_fallback(value: str) -> bool:
        return value.startswith(FALLBACK_PREFIX)

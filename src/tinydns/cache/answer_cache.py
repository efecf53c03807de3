"""AnswerSet cache on top of a KeyValueStore.

Keys are the query name as received (trailing-dot form) immediately followed
by the type mnemonic, with no separator: ``example.com.A``. Values are the
JSON encoding of AnswerSet.to_dict(). Entries carry no TTL.
"""

from __future__ import annotations

import json
import logging
from typing import Optional

from ..records import AnswerSet
from .base import KeyValueStore

logger = logging.getLogger(__name__)


def cache_key(domain: str, type_name: str) -> bytes:
    """Build the store key for a (domain, type) pair."""

    return f"{domain}{type_name}".encode("utf-8")


class AnswerCache:
    """Brief: Serialize AnswerSets into a KeyValueStore.

    Inputs (constructor):
      - store: Backing KeyValueStore (assumed safe for concurrent use).

    Outputs:
      - AnswerCache instance.

    Failures never propagate: get() reports a miss and put() returns False,
    both after logging.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def get(self, domain: str, type_name: str) -> Optional[AnswerSet]:
        """Brief: Read the cached AnswerSet for a (domain, type) pair.

        Inputs:
          - domain: Query name in trailing-dot form.
          - type_name: Query type mnemonic (``A``, ``MX``...).

        Outputs:
          - AnswerSet or None on miss, store error or undecodable entry.
        """

        key = cache_key(domain, type_name)
        try:
            raw = self.store.get(key)
        except Exception:
            logger.warning("Cache read failed for %s %s", type_name, domain, exc_info=True)
            return None
        if raw is None:
            return None
        try:
            return AnswerSet.from_dict(json.loads(raw.decode("utf-8")))
        except (UnicodeDecodeError, ValueError, TypeError, KeyError, AttributeError) as exc:
            logger.debug("Ignoring undecodable cache entry %r: %s", key, exc)
            return None

    def put(self, domain: str, type_name: str, answers: AnswerSet) -> bool:
        """Brief: Store an AnswerSet, overwriting any previous entry.

        Inputs:
          - domain: Query name in trailing-dot form.
          - type_name: Query type mnemonic.
          - answers: AnswerSet to persist.

        Outputs:
          - bool: True when the write succeeded.
        """

        key = cache_key(domain, type_name)
        try:
            payload = json.dumps(answers.to_dict(), separators=(",", ":")).encode("utf-8")
            self.store.set(key, payload)
        except Exception:
            logger.warning("Cache write failed for %s %s", type_name, domain, exc_info=True)
            return False
        return True

    def close(self) -> None:
        self.store.close()

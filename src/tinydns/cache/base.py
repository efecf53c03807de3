from __future__ import annotations

from typing import Optional


class KeyValueStore:
    """Base class for the byte key/value store behind the answer cache.

    Brief:
      KeyValueStore is the narrow contract the resolver relies on. Entries
      never expire; a value lives until it is overwritten or the store is
      closed. Implementations must allow concurrent get/set from request
      threads.

    Inputs:
      - None.

    Outputs:
      - KeyValueStore instance.
    """

    def get(self, key: bytes) -> Optional[bytes]:
        """Brief: Lookup a stored value.

        Inputs:
          - key: Raw key bytes.

        Outputs:
          - bytes | None: Stored value if present; otherwise None.
        """

        raise NotImplementedError("KeyValueStore.get() must be implemented by a subclass")

    def set(self, key: bytes, value: bytes) -> None:
        """Brief: Store value under key, replacing any previous value.

        Inputs:
          - key: Raw key bytes.
          - value: Raw value bytes.

        Outputs:
          - None.
        """

        raise NotImplementedError("KeyValueStore.set() must be implemented by a subclass")

    def close(self) -> None:
        """Release resources held by the store."""

        raise NotImplementedError(
            "KeyValueStore.close() must be implemented by a subclass"
        )

    def __enter__(self) -> "KeyValueStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[no-untyped-def]
        self.close()

"""Ephemeral resource handles for sandboxed content."""

import logging
import uuid

logger = logging.getLogger(__name__)


class ResourceRegistry:
    """Mint unguessable, revocable handles for in-memory content.

    Mirrors object URLs: a handle resolves only while it is live and is never
    persisted. Every handle minted by a sandbox session is revoked when the
    session is disposed, so `live` is empty once nothing is mounted.
    """

    def __init__(self, base: str = "blob:lessonforge") -> None:
        self._base = base.rstrip("/")
        self._live: dict[str, tuple[str, str]] = {}

    def create(self, content: str, media_type: str) -> str:
        handle = f"{self._base}/{uuid.uuid4()}"
        self._live[handle] = (content, media_type)
        return handle

    def read(self, handle: str) -> str:
        """Content behind a live handle.

        Raises:
            KeyError: If the handle was revoked or never existed
        """
        return self._live[handle][0]

    def media_type(self, handle: str) -> str:
        return self._live[handle][1]

    def revoke(self, handle: str) -> None:
        """Release a handle. Revoking twice is harmless."""
        if self._live.pop(handle, None) is not None:
            logger.debug("Revoked %s", handle)

    @property
    def live(self) -> frozenset[str]:
        return frozenset(self._live)

    def __contains__(self, handle: object) -> bool:
        return handle in self._live

    def __len__(self) -> int:
        return len(self._live)

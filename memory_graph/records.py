"""
Record store over one loaded snapshot.

A RecordSet wraps the mapping of key -> Memory that a single operation works
on. It owns record creation, update and deletion, link creation, and the
expiration sweep, and remembers whether anything changed so the caller
knows whether the snapshot must be written back.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from .backends import Link, Memory

logger = logging.getLogger(__name__)


class ValidationError(ValueError):
    """A required argument is missing or malformed."""


class NotFoundError(LookupError):
    """A referenced key does not exist in the live record set."""


def compute_expiry(now: datetime, expires_in_seconds: Optional[float]) -> Optional[str]:
    """Positive durations expire that many seconds from now; anything else never expires."""
    if expires_in_seconds is not None and expires_in_seconds > 0:
        return (now + timedelta(seconds=expires_in_seconds)).isoformat()
    return None


class RecordSet:
    """
    Live view of a memory snapshot.

    Args:
        memories: Snapshot as loaded from the storage backend. Mutated in place.
        now: Timestamp used for every write made through this view.
    """

    def __init__(self, memories: dict[str, Memory], now: datetime):
        self.memories = memories
        self.now = now
        self.changed = False

    def _touch(self, memory: Memory):
        memory.updated_at = self.now.isoformat()
        self.changed = True

    # === EXPIRATION ===

    def sweep_expired(self, now: Optional[datetime] = None) -> bool:
        """Delete every record that expired strictly before now, links to it included."""
        now = now or self.now
        expired = [key for key, memory in self.memories.items() if memory.is_expired(now)]
        for key in expired:
            self.delete(key)
        if expired:
            logger.info(f"Purged {len(expired)} expired memories: {expired}")
        return bool(expired)

    # === RECORDS ===

    def upsert(
        self,
        key: str,
        value: str,
        tags: Optional[list[str]] = None,
        expires_in_seconds: Optional[float] = None,
    ) -> Memory:
        """
        Create or update a memory.

        tags and expires_in_seconds of None mean "not supplied" and leave an
        existing record's fields untouched; an empty tag list clears tags.
        """
        if not key or not value:
            raise ValidationError("key and value are required")

        now = self.now.isoformat()
        memory = self.memories.get(key)
        if memory is None:
            memory = Memory(
                key=key,
                value=value,
                tags=_unique(tags or []),
                created_at=now,
                updated_at=now,
                expires_at=compute_expiry(self.now, expires_in_seconds),
            )
            self.memories[key] = memory
            self.changed = True
            logger.debug(f"Created memory {key!r}")
            return memory

        memory.value = value
        if tags is not None:
            memory.tags = _unique(tags)
        if expires_in_seconds is not None:
            memory.expires_at = compute_expiry(self.now, expires_in_seconds)
        self._touch(memory)
        logger.debug(f"Updated memory {key!r}")
        return memory

    def get(self, key: str) -> Optional[Memory]:
        return self.memories.get(key)

    def delete(self, key: str) -> bool:
        """Remove a memory and every link that targets it."""
        if key not in self.memories:
            return False
        del self.memories[key]
        for memory in self.memories.values():
            kept = [link for link in memory.links if link.target_key != key]
            if len(kept) != len(memory.links):
                memory.links = kept
        self.changed = True
        logger.debug(f"Deleted memory {key!r}")
        return True

    def list_keys(self, tag: Optional[str] = None) -> list[str]:
        if tag:
            return [key for key, memory in self.memories.items() if tag in memory.tags]
        return list(self.memories)

    def all_tags(self) -> list[str]:
        tags: dict[str, None] = {}
        for memory in self.memories.values():
            for tag in memory.tags:
                tags.setdefault(tag)
        return list(tags)

    # === LINKS ===

    def add_link(self, source_key: str, target_key: str, relationship_type: str) -> bool:
        """
        Append a link from source to target.

        Returns False when an identical (target, relationship) link already
        exists on the source. Raises NotFoundError if either key is absent.
        """
        source = self.memories.get(source_key)
        if source is None:
            raise NotFoundError(f"Source key not found: {source_key}")
        if target_key not in self.memories:
            raise NotFoundError(f"Target key not found: {target_key}")

        for link in source.links:
            if link.target_key == target_key and link.relationship_type == relationship_type:
                return False

        source.links.append(Link(target_key=target_key, relationship_type=relationship_type))
        self._touch(source)
        return True

    def get_links(self, source_key: str, relationship_type: Optional[str] = None) -> list[Link]:
        source = self.memories.get(source_key)
        if source is None:
            raise NotFoundError(f"Source key not found: {source_key}")
        if relationship_type:
            return [link for link in source.links if link.relationship_type == relationship_type]
        return list(source.links)


def _unique(tags: list[str]) -> list[str]:
    return list(dict.fromkeys(tags))

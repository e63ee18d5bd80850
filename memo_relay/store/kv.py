"""
Namespaced key-value store with per-key metadata and TTL expiry.

The store offers the primitives of a hosted KV namespace and nothing more:
upsert, point lookup, ordered prefix listing and delete. There is no
"delete by field" and no locking; callers build indexes out of key encoding
and metadata.
"""
import time
from dataclasses import dataclass
from typing import Annotated, Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

from fastapi import Depends
from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from memo_relay.core.database import get_db
from memo_relay.core.logging import get_logger
from memo_relay.models.kv_entry import KVEntry

logger = get_logger(__name__)


@dataclass(frozen=True)
class KeyInfo:
    """A listed key: its name and metadata, never its value."""
    name: str
    metadata: Optional[Dict[str, Any]] = None
    expiration: Optional[int] = None


@runtime_checkable
class KeyValueStore(Protocol):
    """Protocol for key-value backends used by the message queue."""
    
    def put(
        self,
        key: str,
        value: str,
        metadata: Optional[Dict[str, Any]] = None,
        expiration_ttl: Optional[int] = None,
    ) -> None:
        ...
    
    def get(self, key: str) -> Optional[str]:
        ...
    
    def list(self, prefix: str = "", limit: Optional[int] = None) -> List[KeyInfo]:
        ...
    
    def delete(self, key: str) -> bool:
        ...


class KVStore:
    """
    SQLAlchemy-backed key-value store.
    
    Every call is a single statement followed by a commit; nothing is
    retried. Expired keys are invisible to get/list before they are
    physically purged.
    """
    
    def __init__(self, db: Session, clock: Callable[[], float] = time.time):
        self.db = db
        self.clock = clock
    
    def _now(self) -> int:
        return int(self.clock())
    
    def _live(self):
        return or_(KVEntry.expires_at.is_(None), KVEntry.expires_at > self._now())
    
    def put(
        self,
        key: str,
        value: str,
        metadata: Optional[Dict[str, Any]] = None,
        expiration_ttl: Optional[int] = None,
    ) -> None:
        """Write a key, replacing any previous value and metadata."""
        expires_at = self._now() + expiration_ttl if expiration_ttl else None
        entry = KVEntry(key=key, value=value, meta=metadata, expires_at=expires_at)
        
        try:
            self.db.merge(entry)
            self.db.commit()
        except IntegrityError:
            # Race condition: a concurrent request inserted the same key first
            self.db.rollback()
            self.db.merge(entry)
            self.db.commit()
    
    def get(self, key: str) -> Optional[str]:
        """Return the value of a live key, or None."""
        stmt = select(KVEntry.value).where(KVEntry.key == key, self._live())
        return self.db.execute(stmt).scalar_one_or_none()
    
    def list(self, prefix: str = "", limit: Optional[int] = None) -> List[KeyInfo]:
        """List live keys under prefix in ascending key order."""
        stmt = (
            select(KVEntry.key, KVEntry.meta, KVEntry.expires_at)
            .where(KVEntry.key.startswith(prefix, autoescape=True), self._live())
            .order_by(KVEntry.key.asc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        
        return [
            KeyInfo(name=key, metadata=meta, expiration=expires_at)
            for key, meta, expires_at in self.db.execute(stmt)
        ]
    
    def delete(self, key: str) -> bool:
        """Delete a key. Returns False when there was nothing to delete."""
        result = self.db.execute(delete(KVEntry).where(KVEntry.key == key))
        self.db.commit()
        return result.rowcount > 0
    
    def purge_expired(self) -> int:
        """Physically remove expired rows."""
        result = self.db.execute(
            delete(KVEntry).where(KVEntry.expires_at.is_not(None), KVEntry.expires_at <= self._now())
        )
        self.db.commit()
        if result.rowcount:
            logger.info("Purged expired keys", extra={"extra_data": {"purged": result.rowcount}})
        return result.rowcount


def get_store(db: Annotated[Session, Depends(get_db)]) -> KVStore:
    """Dependency to get the key-value store for the request."""
    return KVStore(db)

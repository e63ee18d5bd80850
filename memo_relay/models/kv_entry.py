"""
Key-value entry database model.
"""
from sqlalchemy import Column, String, Text, Integer, JSON

from memo_relay.core.database import Base


class KVEntry(Base):
    """One key of the namespaced key-value store."""
    
    __tablename__ = "kv_entries"
    
    # Keys are listed in ascending order, so the primary key doubles as the ordering index
    key = Column(String(512), primary_key=True, nullable=False)
    
    value = Column(Text, nullable=False)
    
    # Opaque per-key metadata, returned by listing without loading the value
    # ("metadata" is reserved by the declarative base)
    meta = Column("metadata", JSON, nullable=True)
    
    # Unix epoch seconds; NULL never expires
    expires_at = Column(Integer, nullable=True, index=True)
    
    def __repr__(self) -> str:
        return f"<KVEntry(key={self.key}, expires_at={self.expires_at})>"

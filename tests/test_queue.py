"""
Tests for the key-value store and the queue operations built on it.
"""
import json

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from memo_relay.core.database import Base
from memo_relay.models import kv_entry  # noqa: F401 - Import to register models
from memo_relay.schemas.message import WebhookPayload
from memo_relay.services.message_queue import (
    KEY_PREFIX,
    ack_messages,
    enqueue_events,
    message_key,
    pull_messages,
)
from memo_relay.store.kv import KeyInfo, KeyValueStore, KVStore


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now
    
    def __call__(self) -> float:
        return self.now


@pytest.fixture
def db(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'kv.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(db, clock):
    return KVStore(db, clock=clock)


def payload(*events) -> WebhookPayload:
    return WebhookPayload.model_validate({"events": list(events)})


def text_event(message_id: str, timestamp: int, text: str = "hi") -> dict:
    return {
        "type": "message",
        "message": {"type": "text", "id": message_id, "text": text},
        "timestamp": timestamp,
        "source": {"type": "user", "userId": "u1"},
    }


class TestKVStore:
    
    def test_implements_protocol(self, store):
        assert isinstance(store, KeyValueStore)
    
    def test_put_get(self, store):
        store.put("a", "1")
        assert store.get("a") == "1"
        assert store.get("missing") is None
    
    def test_put_overwrites_value_and_metadata(self, store):
        store.put("a", "1", metadata={"v": 1})
        store.put("a", "2", metadata={"v": 2})
        assert store.get("a") == "2"
        assert store.list() == [KeyInfo(name="a", metadata={"v": 2})]
    
    def test_list_is_ordered_and_prefixed(self, store):
        for key in ["msg:b", "other:a", "msg:a", "msg:c"]:
            store.put(key, "x")
        assert [k.name for k in store.list(prefix="msg:")] == ["msg:a", "msg:b", "msg:c"]
        assert [k.name for k in store.list(prefix="msg:", limit=2)] == ["msg:a", "msg:b"]
    
    def test_list_prefix_wildcards_are_literal(self, store):
        store.put("a_b:1", "x")
        store.put("axb:1", "x")
        store.put("a%b:1", "x")
        assert [k.name for k in store.list(prefix="a_b")] == ["a_b:1"]
    
    def test_list_returns_metadata(self, store):
        store.put("k", "value", metadata={"messageId": "m1"})
        [info] = store.list()
        assert info.metadata == {"messageId": "m1"}
    
    def test_delete(self, store):
        store.put("a", "1")
        assert store.delete("a") is True
        assert store.get("a") is None
        assert store.delete("a") is False
    
    def test_expired_keys_are_invisible(self, store, clock):
        store.put("short", "1", expiration_ttl=10)
        store.put("forever", "2")
        assert store.list()[1].expiration == int(clock.now) + 10
        
        clock.now += 11
        assert store.get("short") is None
        assert [k.name for k in store.list()] == ["forever"]
    
    def test_purge_expired(self, store, clock):
        store.put("short", "1", expiration_ttl=10)
        store.put("long", "2", expiration_ttl=100)
        clock.now += 50
        assert store.purge_expired() == 1
        assert store.purge_expired() == 0
        assert store.get("long") == "2"


class TestMessageKey:
    
    def test_key_layout(self):
        assert message_key(100, "m1") == "msg:00000000000000000100:m1"
    
    def test_key_order_follows_timestamp_across_digit_counts(self):
        keys = [message_key(ts, "m") for ts in (1700000000000, 9, 100, 99)]
        assert sorted(keys) == [message_key(ts, "m") for ts in (9, 99, 100, 1700000000000)]


class TestEnqueue:
    
    def test_enqueue_writes_value_metadata_and_ttl(self, store, clock):
        queued = enqueue_events(store, payload(text_event("m1", 100, "hello")), ttl_seconds=864000)
        assert [m.message_id for m in queued] == ["m1"]
        
        [info] = store.list(prefix=KEY_PREFIX)
        assert info.name == message_key(100, "m1")
        assert info.metadata == {"messageId": "m1"}
        assert info.expiration == int(clock.now) + 864000
        
        value = json.loads(store.get(info.name))
        assert value["messageId"] == info.metadata["messageId"]
        assert value["userId"] == "u1"
        assert value["text"] == "hello"
        assert value["receivedAt"] == 100
        assert "createdAt" in value
    
    def test_enqueue_skips_other_events(self, store):
        queued = enqueue_events(store, payload(
            {"type": "unfollow", "timestamp": 1},
            {"type": "message", "message": {"type": "image", "id": "i1"}, "timestamp": 2},
        ))
        assert queued == []
        assert store.list() == []
    
    def test_enqueue_without_source(self, store):
        event = text_event("m1", 5)
        del event["source"]
        [message] = enqueue_events(store, payload(event))
        assert message.user_id is None


class TestPull:
    
    def test_pull_skips_keys_deleted_after_listing(self):
        class StaleListingStore:
            def list(self, prefix="", limit=None):
                return [KeyInfo(name="msg:gone"), KeyInfo(name="msg:here")]
            
            def get(self, key):
                if key == "msg:here":
                    return json.dumps({
                        "messageId": "here", "userId": "u", "text": "t",
                        "receivedAt": 1, "createdAt": 2,
                    })
                return None
        
        messages = pull_messages(StaleListingStore(), limit=10)
        assert [m.message_id for m in messages] == ["here"]
    
    def test_pull_is_read_only(self, store):
        enqueue_events(store, payload(text_event("m1", 1), text_event("m2", 2)))
        pull_messages(store, limit=10)
        assert len(store.list(prefix=KEY_PREFIX)) == 2


class TestAck:
    
    def test_ack_matches_on_metadata_only(self, store):
        value = json.dumps({"messageId": "in-value", "text": "t", "receivedAt": 1, "createdAt": 1})
        store.put(message_key(1, "x"), value, metadata={"messageId": "in-meta"})
        
        assert ack_messages(store, ["in-value"]) == 0
        assert ack_messages(store, ["in-meta"]) == 1
    
    def test_ack_ignores_entries_without_metadata(self, store):
        store.put(message_key(1, "x"), "{}")
        assert ack_messages(store, ["x"]) == 0
        assert len(store.list()) == 1
    
    def test_ack_leaves_other_prefixes_alone(self, store):
        store.put("other:1", "{}", metadata={"messageId": "m1"})
        enqueue_events(store, payload(text_event("m1", 1)))
        assert ack_messages(store, ["m1"]) == 1
        assert [k.name for k in store.list()] == ["other:1"]
    
    def test_ack_same_id_at_two_timestamps(self, store):
        """Each stored entry carrying the id is removed and counted."""
        enqueue_events(store, payload(text_event("m1", 1), text_event("m1", 2)))
        assert ack_messages(store, {"m1"}) == 2
    
    def test_ack_empty_set(self, store):
        enqueue_events(store, payload(text_event("m1", 1)))
        assert ack_messages(store, []) == 0

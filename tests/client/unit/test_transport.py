import pytest

from roomchat.client.events import EventKind, Topic
from roomchat.client.transport import InMemoryBlobStorage, InMemoryEventBus


@pytest.mark.asyncio
async def test_bus_delivers_only_to_matching_topic_and_room() -> None:
    bus = InMemoryEventBus()
    received: list[dict] = []
    await bus.subscribe(Topic.MESSAGES, "general", received.append)
    await bus.subscribe(Topic.ROOM_CONFIG, "general", lambda raw: received.append({"wrong": "topic"}))
    await bus.subscribe(Topic.MESSAGES, "random", lambda raw: received.append({"wrong": "room"}))

    delivered = bus.publish(Topic.MESSAGES, "general", EventKind.DELETE, {"id": "m-1"})

    assert delivered == 1
    assert received == [{"kind": "delete", "payload": {"id": "m-1"}}]


@pytest.mark.asyncio
async def test_bus_delivers_in_publish_order() -> None:
    bus = InMemoryEventBus()
    received: list[str] = []
    await bus.subscribe(Topic.MESSAGES, "general", lambda raw: received.append(raw["payload"]["id"]))

    for message_id in ("m-1", "m-2", "m-3"):
        bus.publish(Topic.MESSAGES, "general", EventKind.DELETE, {"id": message_id})

    assert received == ["m-1", "m-2", "m-3"]


@pytest.mark.asyncio
async def test_unsubscribe_is_idempotent_and_stops_delivery() -> None:
    bus = InMemoryEventBus()
    received: list[dict] = []
    handle = await bus.subscribe(Topic.MESSAGES, "general", received.append)

    bus.unsubscribe(handle)
    bus.unsubscribe(handle)
    delivered = bus.publish(Topic.MESSAGES, "general", EventKind.DELETE, {"id": "m-1"})

    assert delivered == 0
    assert received == []
    assert bus.subscriber_count(Topic.MESSAGES, "general") == 0


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_block_others(caplog) -> None:
    bus = InMemoryEventBus()
    received: list[dict] = []

    def broken(raw: dict) -> None:
        raise RuntimeError("boom")

    await bus.subscribe(Topic.MESSAGES, "general", broken)
    await bus.subscribe(Topic.MESSAGES, "general", received.append)

    delivered = bus.publish(Topic.MESSAGES, "general", EventKind.DELETE, {"id": "m-1"})

    assert delivered == 1
    assert len(received) == 1
    assert "Subscriber for" in caplog.text


@pytest.mark.asyncio
async def test_subscribers_receive_independent_payload_copies() -> None:
    bus = InMemoryEventBus()
    received: list[dict] = []
    await bus.subscribe(Topic.MESSAGES, "general", received.append)
    payload = {"id": "m-1"}

    bus.publish(Topic.MESSAGES, "general", EventKind.DELETE, payload)
    received[0]["payload"]["id"] = "mutated"

    assert payload == {"id": "m-1"}


@pytest.mark.asyncio
async def test_blob_storage_upload_returns_readable_url() -> None:
    blobs = InMemoryBlobStorage()

    url = await blobs.upload("general", "notes.txt", b"abc", "text/plain")

    assert url.startswith("memory://chat-files/general/")
    assert url.endswith(".txt")
    assert blobs.read(url) == b"abc"
    assert blobs.read("memory://chat-files/missing") is None

import asyncio

import pytest
import pytest_asyncio
from reqsync.collab import CollaborationManager, Relay, client_message_adapter


class FakeConnection:
    def __init__(self, connection_id: str):
        self.connection_id = connection_id
        self.received: list[dict] = []

    async def send_json(self, message: dict) -> None:
        self.received.append(message)

    def events(self, event: str) -> list[dict]:
        return [m for m in self.received if m["event"] == event]


class GatedConnection(FakeConnection):
    """Blocks every delivery until the gate opens."""

    def __init__(self, connection_id: str):
        super().__init__(connection_id)
        self.gate = asyncio.Event()

    async def send_json(self, message: dict) -> None:
        await self.gate.wait()
        await super().send_json(message)


class BrokenConnection(FakeConnection):
    async def send_json(self, message: dict) -> None:
        raise ConnectionResetError("socket gone")


@pytest_asyncio.fixture
async def relay():
    relay = Relay(outbox_size=8)
    await relay.start()
    yield relay
    await relay.stop()


@pytest.fixture
def manager(relay):
    return CollaborationManager(relay)


@pytest.fixture
def connections(manager):
    def _connect(*ids: str) -> list[FakeConnection]:
        created = [FakeConnection(connection_id) for connection_id in ids]
        for connection in created:
            manager.connect(connection)
        return created

    return _connect


def usernames(message: dict) -> dict[str, str]:
    return {user["id"]: user["username"] for user in message["users"]}


class TestPresence:
    @pytest.mark.asyncio
    async def test_join_broadcasts_roster_to_everyone(self, manager, relay, connections):
        c1, c2 = connections("c1", "c2")

        await manager.join("r", "c1", "alice")
        await manager.join("r", "c2", "bob")
        await relay.flush()

        assert len(c1.events("user-joined")) == 2
        [joined] = c2.events("user-joined")
        assert joined["requestId"] == "r"
        assert joined["userId"] == "c2"
        assert joined["username"] == "bob"
        assert usernames(joined) == {"c1": "alice", "c2": "bob"}

    @pytest.mark.asyncio
    async def test_leave_keeps_room_until_empty(self, manager, relay, connections):
        c1, c2 = connections("c1", "c2")
        await manager.join("r", "c1", "alice")
        await manager.join("r", "c2", "bob")

        roster = await manager.leave("r", "c1")
        await relay.flush()

        assert [(p.connection_id, p.display_name) for p in roster] == [("c2", "bob")]
        assert "r" in manager.rooms
        [left] = c2.events("user-left")
        assert usernames(left) == {"c2": "bob"}
        assert c1.events("user-left") == []

        await manager.leave("r", "c2")
        assert "r" not in manager.rooms
        assert manager.roster("r") == []

    @pytest.mark.asyncio
    async def test_rejoin_renames(self, manager, connections):
        connections("c1")
        await manager.join("r", "c1", "alice")
        roster = await manager.join("r", "c1", "alicia")
        assert [p.display_name for p in roster] == ["alicia"]

    @pytest.mark.asyncio
    async def test_sequence_is_monotonic(self, manager, relay, connections):
        c1, _ = connections("c1", "c2")
        await manager.join("r", "c1", "alice")
        await manager.join("r", "c2", "bob")
        await manager.leave("r", "c2")
        await manager.leave("r", "c1")
        await manager.join("r", "c1", "alice")
        await relay.flush()

        seqs = [m["seq"] for m in c1.received]
        assert seqs == sorted(seqs)
        assert len(set(seqs)) == len(seqs)

    @pytest.mark.asyncio
    async def test_leave_unknown_room_is_noop(self, manager, connections):
        connections("c1")
        assert await manager.leave("nowhere", "c1") == []

    @pytest.mark.asyncio
    async def test_disconnect_cleans_every_room(self, manager, relay, connections):
        _, c2 = connections("c1", "c2")
        await manager.join("r1", "c1", "alice")
        await manager.join("r2", "c1", "alice")
        await manager.join("r1", "c2", "bob")

        await manager.disconnect("c1")
        await relay.flush()

        assert "r2" not in manager.rooms
        assert usernames(c2.events("user-left")[-1]) == {"c2": "bob"}
        assert "c1" not in relay.connection_ids

        await manager.disconnect("c1")

    @pytest.mark.asyncio
    async def test_join_racing_last_leave_opens_a_new_room(self, manager, relay, connections):
        _, c2 = connections("c1", "c2")
        await manager.join("r", "c1", "alice")
        room = manager.rooms.get("r")

        async with room.lock:
            leaving = asyncio.create_task(manager.leave("r", "c1"))
            joining = asyncio.create_task(manager.join("r", "c2", "bob"))
            # both are now queued on the lock, the leave first
            await asyncio.sleep(0)

        assert await leaving == []
        roster = await joining
        await relay.flush()

        assert room.closed
        assert manager.rooms.get("r") is not room
        assert [(p.connection_id, p.display_name) for p in roster] == [("c2", "bob")]
        assert usernames(c2.events("user-joined")[-1]) == {"c2": "bob"}


class TestEditRelay:
    @pytest.mark.asyncio
    async def test_edit_reaches_everyone_but_sender(self, manager, relay, connections):
        c1, c2, c3 = connections("c1", "c2", "c3")
        for connection_id, name in [("c1", "a"), ("c2", "b"), ("c3", "c")]:
            await manager.join("r", connection_id, name)

        payload = {"url": "https://api.test/{{id}}", "headers": [{"key": "X", "value": "1"}]}
        delivered = await manager.edit("r", "c1", payload)
        await relay.flush()

        assert delivered == 2
        assert c1.events("request-updated") == []
        for connection in (c2, c3):
            [update] = connection.events("request-updated")
            assert update == {"event": "request-updated", "requestId": "r", "userId": "c1", "data": payload}

    @pytest.mark.asyncio
    async def test_edit_from_non_member_is_dropped(self, manager, relay, connections):
        _, c2 = connections("c1", "c2")
        await manager.join("r", "c2", "bob")

        assert await manager.edit("r", "c1", {"x": 1}) == 0
        assert await manager.edit("other", "c2", {"x": 1}) == 0
        await relay.flush()
        assert c2.events("request-updated") == []

    @pytest.mark.asyncio
    async def test_edits_keep_sender_order(self, manager, relay, connections):
        _, c2 = connections("c1", "c2")
        await manager.join("r", "c1", "a")
        await manager.join("r", "c2", "b")

        for n in range(5):
            await manager.edit("r", "c1", {"n": n})
        await relay.flush()

        assert [m["data"]["n"] for m in c2.events("request-updated")] == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_cursor_move(self, manager, relay, connections):
        c1, c2 = connections("c1", "c2")
        await manager.join("r", "c1", "a")
        await manager.join("r", "c2", "b")

        await manager.cursor_move("r", "c2", "url", 12)
        await relay.flush()

        assert c1.events("cursor-moved") == [{"event": "cursor-moved", "requestId": "r", "userId": "c2", "field": "url", "position": 12}]
        assert c2.events("cursor-moved") == []

    @pytest.mark.asyncio
    async def test_handle_dispatches_wire_messages(self, manager, relay, connections):
        c1, c2 = connections("c1", "c2")
        await manager.handle("c1", client_message_adapter.validate_python({"event": "join-session", "requestId": "r", "username": "alice"}))
        await manager.handle("c2", client_message_adapter.validate_python({"event": "join-session", "requestId": "r"}))
        await manager.handle("c2", client_message_adapter.validate_python({"event": "request-update", "requestId": "r", "data": {"name": "x"}}))
        await relay.flush()

        assert usernames(c2.events("user-joined")[-1]) == {"c1": "alice", "c2": "Anonymous"}
        assert c1.events("request-updated")[0]["data"] == {"name": "x"}


class TestRelay:
    def test_outbox_size_must_fit_priorities(self):
        with pytest.raises(ValueError):
            Relay(outbox_size=1)

    def test_register_before_start(self):
        with pytest.raises(RuntimeError, match="not started"):
            Relay().register(FakeConnection("c1"))

    @pytest.mark.asyncio
    async def test_backpressure_drops_cursor_moves_first(self):
        relay = Relay(outbox_size=4)
        await relay.start()
        slow = GatedConnection("slow")
        relay.register(slow)

        assert relay.send("slow", {"event": "request-updated", "n": 1})
        assert relay.send("slow", {"event": "request-updated", "n": 2})
        assert not relay.send("slow", {"event": "cursor-moved"}, droppable=True)
        assert relay.send("slow", {"event": "request-updated", "n": 3})
        assert relay.send("slow", {"event": "request-updated", "n": 4})
        assert not relay.send("slow", {"event": "request-updated", "n": 5})

        slow.gate.set()
        await relay.flush()
        assert [m["n"] for m in slow.received] == [1, 2, 3, 4]
        await relay.stop()

    @pytest.mark.asyncio
    async def test_failed_delivery_closes_outbox(self, relay):
        broken = BrokenConnection("broken")
        relay.register(broken)

        assert relay.send("broken", {"event": "request-updated"})
        await relay.flush()

        assert not relay.send("broken", {"event": "request-updated"})
        await relay.unregister("broken")
        assert relay.connection_ids == []

    @pytest.mark.asyncio
    async def test_send_to_unknown_connection(self, relay):
        assert not relay.send("ghost", {"event": "request-updated"})
        assert relay.broadcast(["ghost", "nobody"], {"event": "request-updated"}) == 0

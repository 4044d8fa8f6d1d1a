"""Per-request collaboration sessions.

A room exists while at least one editor has joined it:

    Absent --join--> Active --leave/disconnect of the last editor--> Absent

Presence changes broadcast the full roster with a per-room sequence number;
consumers keep the snapshot with the highest `seq`. Edits and cursor moves are
relayed verbatim to everyone else in the room: no merge, no validation, no
persistence. Two editors changing the same field concurrently can end up with
different local copies; the last edit each of them received wins locally.

Operating on a room that is gone, or as a connection that is not in it, is a
no-op: disconnect races are expected.
"""

import logging

from pydantic import JsonValue
from reqsync_models import Participant

from ..constants import ServerEvent
from ..exceptions import SessionError
from .messages import ClientMessage, CursorMessage, CursorRelayMessage, EditMessage, EditRelayMessage, JoinMessage, LeaveMessage, RosterMessage
from .relay import Connection, Relay
from .rooms import Room, RoomRegistry

logger = logging.getLogger(__name__)


class CollaborationManager:
    def __init__(self, relay: Relay, rooms: RoomRegistry | None = None):
        self.relay = relay
        self.rooms = rooms or RoomRegistry()

    def connect(self, connection: Connection) -> None:
        self.relay.register(connection)

    def roster(self, resource_id: str) -> list[Participant]:
        try:
            return self.rooms.get(resource_id).roster()
        except SessionError:
            return []

    async def join(self, resource_id: str, connection_id: str, display_name: str) -> list[Participant]:
        """Add the editor and broadcast the roster to the whole room, joiner included."""
        while True:
            room = self.rooms.get_or_create(resource_id)
            async with room.lock:
                if room.closed:
                    # emptied and discarded while we waited for the lock
                    continue
                room.add(connection_id, display_name)
                roster = self._publish_roster(room, ServerEvent.USER_JOINED, connection_id, username=display_name)
            logger.info(f"{display_name} ({connection_id}) joined {resource_id}, {len(roster)} editor(s)")
            return roster

    async def leave(self, resource_id: str, connection_id: str) -> list[Participant]:
        """Remove the editor; the remaining members get the new roster."""
        try:
            room = self.rooms.get(resource_id)
        except SessionError as e:
            logger.debug(f"Ignoring leave: {e}")
            return []

        async with room.lock:
            try:
                room.remove(connection_id)
            except SessionError as e:
                logger.debug(f"Ignoring leave: {e}")
                return room.roster()

            if len(room) == 0:
                self.rooms.discard(room)
                logger.info(f"Room {resource_id} closed")
                return []

            roster = self._publish_roster(room, ServerEvent.USER_LEFT, connection_id)
        logger.info(f"{connection_id} left {resource_id}, {len(roster)} editor(s)")
        return roster

    async def edit(self, resource_id: str, connection_id: str, payload: JsonValue) -> int:
        """Relay an edit to every other member; returns the number of queued deliveries."""
        message = EditRelayMessage(request_id=resource_id, user_id=connection_id, data=payload).dump()
        return await self._relay_from(resource_id, connection_id, message, droppable=False)

    async def cursor_move(self, resource_id: str, connection_id: str, field: str, position: JsonValue) -> int:
        message = CursorRelayMessage(request_id=resource_id, user_id=connection_id, field=field, position=position).dump()
        return await self._relay_from(resource_id, connection_id, message, droppable=True)

    async def disconnect(self, connection_id: str) -> None:
        """Drop the connection from every room it joined and release its outbox."""
        for room in self.rooms.rooms_of(connection_id):
            await self.leave(room.resource_id, connection_id)
        await self.relay.unregister(connection_id)

    async def handle(self, connection_id: str, message: ClientMessage) -> None:
        match message:
            case JoinMessage():
                await self.join(message.request_id, connection_id, message.username)
            case LeaveMessage():
                await self.leave(message.request_id, connection_id)
            case EditMessage():
                await self.edit(message.request_id, connection_id, message.data)
            case CursorMessage():
                await self.cursor_move(message.request_id, connection_id, message.field, message.position)

    async def _relay_from(self, resource_id: str, connection_id: str, message: dict, droppable: bool) -> int:
        try:
            room = self.rooms.get(resource_id)
            async with room.lock:
                if connection_id not in room:
                    raise SessionError(f"Connection {connection_id} is not in room {resource_id}")
                recipients = room.members(exclude=connection_id)
        except SessionError as e:
            logger.debug(f"Ignoring {message['event']}: {e}")
            return 0
        return self.relay.broadcast(recipients, message, droppable=droppable)

    def _publish_roster(self, room: Room, event: ServerEvent, connection_id: str, username: str | None = None) -> list[Participant]:
        roster = room.roster()
        message = RosterMessage(
            event=event,
            request_id=room.resource_id,
            seq=self.rooms.stamp(room),
            user_id=connection_id,
            username=username,
            users=roster,
        ).dump()
        self.relay.broadcast(room.members(), message)
        return roster

import asyncio
import itertools
from dataclasses import dataclass, field

from reqsync_models import Participant

from ..exceptions import SessionError


@dataclass(eq=False)
class Room:
    """Editors currently working on one request definition.

    `seq` grows on every roster change so clients can discard stale snapshots.
    """

    resource_id: str
    participants: dict[str, Participant] = field(default_factory=dict)
    seq: int = 0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    closed: bool = False

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self.participants

    def __len__(self) -> int:
        return len(self.participants)

    def add(self, connection_id: str, display_name: str) -> Participant:
        participant = Participant(connection_id=connection_id, display_name=display_name)
        self.participants[connection_id] = participant
        return participant

    def remove(self, connection_id: str) -> Participant:
        try:
            return self.participants.pop(connection_id)
        except KeyError:
            raise SessionError(f"Connection {connection_id} is not in room {self.resource_id}") from None

    def members(self, exclude: str | None = None) -> list[str]:
        return [connection_id for connection_id in self.participants if connection_id != exclude]

    def roster(self) -> list[Participant]:
        return list(self.participants.values())


class RoomRegistry:
    """Rooms keyed by resource id, each guarded by its own lock.

    Roster sequence numbers come from one registry-wide counter, so they keep
    growing when a room for the same resource is closed and opened again.
    """

    def __init__(self):
        self._rooms: dict[str, Room] = {}
        self._seq = itertools.count(1)

    def __contains__(self, resource_id: str) -> bool:
        return resource_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

    def get(self, resource_id: str) -> Room:
        try:
            return self._rooms[resource_id]
        except KeyError:
            raise SessionError(f"No active room for {resource_id}") from None

    def get_or_create(self, resource_id: str) -> Room:
        room = self._rooms.get(resource_id)
        if room is None:
            room = Room(resource_id=resource_id)
            self._rooms[resource_id] = room
        return room

    def discard(self, room: Room) -> None:
        room.closed = True
        if self._rooms.get(room.resource_id) is room:
            del self._rooms[room.resource_id]

    def rooms_of(self, connection_id: str) -> list[Room]:
        return [room for room in self._rooms.values() if connection_id in room]

    def stamp(self, room: Room) -> int:
        """Advance the room's roster sequence number."""
        room.seq = next(self._seq)
        return room.seq

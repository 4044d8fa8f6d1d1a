"""Real-time collaboration: presence rosters and edit relay per request."""

from reqsync.collab.manager import CollaborationManager
from reqsync.collab.messages import ClientMessage, client_message_adapter
from reqsync.collab.relay import Connection, Relay
from reqsync.collab.rooms import Room, RoomRegistry

__all__ = [
    "ClientMessage",
    "CollaborationManager",
    "Connection",
    "Relay",
    "Room",
    "RoomRegistry",
    "client_message_adapter",
]

# Real-time notification fan-out over WebSocket rooms

import logging
from typing import Any, Dict, Set

from fastapi.encoders import jsonable_encoder

from .models import UserRole

logger = logging.getLogger(__name__)

ROLE_ROOMS = {r.value for r in UserRole}


def complaint_room(complaint_id: str) -> str:
    return f"complaint-{complaint_id}"


class NotificationHub:
    """Process-wide pub/sub hub with role rooms and per-complaint rooms.

    Delivery is best-effort and at-most-once: each event is sent once to every
    socket currently in the room, with no retry and no acknowledgement. A
    socket whose send fails is dropped from every room it had joined.
    Subscribers only need an ``async send_json(data)`` method.
    """

    def __init__(self):
        self.rooms: Dict[str, Set[Any]] = {}

    def join(self, socket, room: str):
        self.rooms.setdefault(room, set()).add(socket)
        logger.info("Subscriber %s joined room %s", id(socket), room)

    def leave(self, socket, room: str):
        members = self.rooms.get(room)
        if members is None:
            return
        members.discard(socket)
        if not members:
            del self.rooms[room]

    def disconnect(self, socket):
        for room in list(self.rooms):
            self.leave(socket, room)

    def subscribers(self, room: str) -> Set[Any]:
        return set(self.rooms.get(room, ()))

    async def emit(self, room: str, event: str, data: dict) -> int:
        """Send ``event`` to everyone in ``room``; returns the delivered count."""
        message = {"event": event, "data": jsonable_encoder(data)}
        delivered = 0
        for socket in list(self.rooms.get(room, ())):
            try:
                await socket.send_json(message)
                delivered += 1
            except Exception as e:
                logger.warning("Dropping subscriber %s from fan-out (%s): %s", id(socket), event, e)
                self.disconnect(socket)
        return delivered

    async def handle_message(self, socket, message: Any) -> dict:
        """Apply a subscription action received from a client; returns the reply frame."""
        if not isinstance(message, dict):
            return {"event": "error", "data": {"message": "Expected a JSON object"}}
        action = message.get("action")
        room = message.get("room")
        if not isinstance(room, str) or not room:
            return {"event": "error", "data": {"message": "A room name is required"}}
        if action in ("join-role-room", "leave-role-room"):
            if room not in ROLE_ROOMS:
                return {"event": "error", "data": {"message": f"Unknown role room '{room}'"}}
            target = room
        elif action in ("join-complaint-room", "leave-complaint-room"):
            target = complaint_room(room)
        else:
            return {"event": "error", "data": {"message": f"Unknown action '{action}'"}}
        if action.startswith("join"):
            self.join(socket, target)
            return {"event": "joined", "data": {"room": target}}
        self.leave(socket, target)
        return {"event": "left", "data": {"room": target}}

    # -- Complaint lifecycle events --

    async def complaint_created(self, complaint: dict):
        prefix = "emergency " if complaint.get("is_emergency") else ""
        await self.emit("admin", "new-complaint", {
            "complaint": complaint, "message": f"New {prefix}complaint submitted"})
        if complaint.get("is_emergency"):
            await self.emit("provider", "emergency-complaint", {
                "complaint": complaint,
                "message": "Emergency complaint requires immediate attention"})

    async def status_changed(self, complaint: dict, old_status: str, new_status: str):
        await self.emit(complaint_room(complaint["id"]), "status-update", {
            "complaint": complaint, "old_status": old_status, "new_status": new_status,
            "message": f"Complaint status updated to {new_status}"})
        await self.emit("citizen", "complaint-update", {
            "complaint_id": complaint["id"], "status": new_status})

    async def update_added(self, complaint_id: str, update: dict):
        await self.emit(complaint_room(complaint_id), "new-update", {
            "complaint": complaint_id, "update": update,
            "message": "New update added to your complaint"})

    async def complaint_assigned(self, complaint: dict):
        await self.emit(complaint_room(complaint["id"]), "assignment-update", {
            "complaint": complaint, "assigned_to": complaint.get("assigned_to"),
            "message": "Complaint has been assigned to a service provider"})


hub = NotificationHub()

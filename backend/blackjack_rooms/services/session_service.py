import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from blackjack_rooms.services import room_service
from blackjack_rooms.services.room_service import (
    PHASE_LOBBY,
    PHASE_PLAYER_TURNS,
    Room,
    RoomPlayer,
    RoomRegistry,
)

logger = logging.getLogger(__name__)

REASON_ROOM_NOT_FOUND = "room-not-found"
REASON_GAME_IN_PROGRESS = "game-in-progress"
REASON_ROOM_FULL = "room-full"
REASON_ALREADY_SEATED = "already-seated"
REASON_ROOM_GONE = "room-gone"
REASON_NOT_A_MEMBER = "not-a-member"

REASON_MESSAGES = {
    REASON_ROOM_NOT_FOUND: "Room not found",
    REASON_GAME_IN_PROGRESS: "Game already in progress",
    REASON_ROOM_FULL: "Room is full",
    REASON_ALREADY_SEATED: "You are already seated in this room",
    REASON_ROOM_GONE: "Room no longer exists",
    REASON_NOT_A_MEMBER: "You are not a member of this room",
}

EVENT_AUTO_STAND = "auto_stand"
EVENT_GRACE_EXPIRED = "disconnect_grace_expired"


class RoomJoinError(ValueError):
    def __init__(self, reason: str) -> None:
        self.reason = reason
        self.message = REASON_MESSAGES.get(reason, reason)
        super().__init__(self.message)


@dataclass
class DeadlineOutcome:
    kind: str
    player_id: str
    room_code: str
    room: Room | None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionManager:
    """Binds live connections to stable player identities and owns room membership.

    Every identity holds at most one seat. Disconnects start two deadlines:
    an auto-stand deadline when the player held the active turn, and a longer
    grace deadline after which the seat is dropped. Both are cancelled by a
    rejoin; cancelling an already processed deadline is a no-op.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        *,
        starting_chips: int = room_service.DEFAULT_STARTING_CHIPS,
        auto_stand_seconds: float = 5.0,
        grace_seconds: float = 30.0,
    ) -> None:
        self.registry = registry
        self.starting_chips = starting_chips
        self.auto_stand_seconds = auto_stand_seconds
        self.grace_seconds = grace_seconds
        self._connection_to_player: dict[str, str] = {}
        self._player_to_connection: dict[str, str] = {}
        self._player_rooms: dict[str, str] = {}
        self._auto_stand_deadlines: dict[str, datetime] = {}
        self._reconnect_deadlines: dict[str, datetime] = {}

    # Connections

    def bind_connection(self, sid: str, player_id: str) -> None:
        previous_sid = self._player_to_connection.get(player_id)
        if previous_sid and previous_sid != sid:
            self._connection_to_player.pop(previous_sid, None)
        self._connection_to_player[sid] = player_id
        self._player_to_connection[player_id] = sid

    def player_for_connection(self, sid: str) -> str | None:
        return self._connection_to_player.get(sid)

    def connection_for_player(self, player_id: str) -> str | None:
        return self._player_to_connection.get(player_id)

    def room_code_for_player(self, player_id: str) -> str | None:
        return self._player_rooms.get(player_id)

    def room_for_player(self, player_id: str) -> Room | None:
        code = self._player_rooms.get(player_id)
        if not code:
            return None
        room = self.registry.get_room(code)
        if not room or not room.get_player(player_id):
            self._player_rooms.pop(player_id, None)
            return None
        return room

    def connections_for_room(self, room: Room) -> list[str]:
        return [
            sid
            for sid in (self._player_to_connection.get(player_id) for player_id in room.player_ids())
            if sid
        ]

    # Deadlines

    def auto_stand_deadline(self, player_id: str) -> datetime | None:
        return self._auto_stand_deadlines.get(player_id)

    def reconnect_deadline(self, player_id: str) -> datetime | None:
        return self._reconnect_deadlines.get(player_id)

    def _clear_deadlines(self, player_id: str) -> None:
        self._auto_stand_deadlines.pop(player_id, None)
        self._reconnect_deadlines.pop(player_id, None)

    def process_deadlines(self, now: datetime | None = None) -> list[DeadlineOutcome]:
        current = now or _utc_now()
        outcomes: list[DeadlineOutcome] = []

        expired_auto_stand = [
            player_id
            for player_id, deadline in self._auto_stand_deadlines.items()
            if current >= deadline
        ]
        for player_id in expired_auto_stand:
            self._auto_stand_deadlines.pop(player_id, None)
            room = self.room_for_player(player_id)
            player = room.get_player(player_id) if room else None
            if not room or not player or not player.disconnected:
                logger.debug("Skipping stale auto-stand for %s", player_id)
                continue
            if room_service.auto_stand_player(room, player_id):
                logger.info("Auto-stood disconnected player %s in room %s", player_id, room.code)
                outcomes.append(DeadlineOutcome(EVENT_AUTO_STAND, player_id, room.code, room))
            else:
                logger.debug("Skipping stale auto-stand for %s", player_id)

        expired_grace = [
            player_id
            for player_id, deadline in self._reconnect_deadlines.items()
            if current >= deadline
        ]
        for player_id in expired_grace:
            self._reconnect_deadlines.pop(player_id, None)
            room = self.room_for_player(player_id)
            player = room.get_player(player_id) if room else None
            if not room or not player or not player.disconnected:
                continue
            code = room.code
            remaining = self.remove_player(player_id)
            outcomes.append(DeadlineOutcome(EVENT_GRACE_EXPIRED, player_id, code, remaining))
        return outcomes

    # Membership

    def _new_player(self, player_id: str, name: str) -> RoomPlayer:
        return RoomPlayer(player_id=player_id, name=name.strip(), chips=self.starting_chips)

    def _leave_other_room(self, player_id: str, keep_code: str | None = None) -> Room | None:
        code = self._player_rooms.get(player_id)
        if not code or code == keep_code:
            return None
        return self.remove_player(player_id)

    def create_room(self, player_id: str, name: str) -> tuple[Room, Room | None]:
        previous = self._leave_other_room(player_id)
        room = self.registry.create_room(self._new_player(player_id, name))
        self._player_rooms[player_id] = room.code
        return room, previous

    def join_room(self, player_id: str, code: str, name: str) -> tuple[Room, Room | None]:
        room = self.registry.get_room(code)
        if not room:
            raise RoomJoinError(REASON_ROOM_NOT_FOUND)
        if room.get_player(player_id):
            raise RoomJoinError(REASON_ALREADY_SEATED)
        if room.phase != PHASE_LOBBY:
            raise RoomJoinError(REASON_GAME_IN_PROGRESS)
        if len(room.players) >= room.max_players:
            raise RoomJoinError(REASON_ROOM_FULL)

        previous = self._leave_other_room(player_id, keep_code=code)
        room_service.add_player(room, self._new_player(player_id, name))
        self._player_rooms[player_id] = room.code
        return room, previous

    def rejoin_room(self, player_id: str, code: str, sid: str) -> Room:
        room = self.registry.get_room(code)
        if not room:
            self._clear_deadlines(player_id)
            if self._player_rooms.get(player_id) == code:
                self._player_rooms.pop(player_id, None)
            raise RoomJoinError(REASON_ROOM_GONE)
        if not room.get_player(player_id):
            raise RoomJoinError(REASON_NOT_A_MEMBER)

        self._clear_deadlines(player_id)
        self.bind_connection(sid, player_id)
        self._player_rooms[player_id] = room.code
        room_service.mark_reconnected(room, player_id)
        return room

    def leave_room(self, player_id: str) -> tuple[str | None, Room | None]:
        code = self._player_rooms.get(player_id)
        if not code:
            return None, None
        return code, self.remove_player(player_id)

    def remove_player(self, player_id: str) -> Room | None:
        """Permanently drop the player's seat; returns the room if it survives."""
        self._clear_deadlines(player_id)
        code = self._player_rooms.pop(player_id, None)
        room = self.registry.get_room(code) if code else None
        if not room:
            return None

        room_service.remove_player(room, player_id)
        logger.info("Player %s removed from room %s", player_id, room.code)
        if not room.players:
            self.registry.remove_room(room.code)
            return None
        return room

    def handle_disconnect(self, sid: str) -> Room | None:
        player_id = self._connection_to_player.pop(sid, None)
        if not player_id:
            return None
        if self._player_to_connection.get(player_id) != sid:
            # A newer connection already took over this identity.
            return None
        self._player_to_connection.pop(player_id, None)

        room = self.room_for_player(player_id)
        if not room:
            return None

        now = _utc_now()
        room_service.mark_disconnected(room, player_id)
        if room_service.ready_to_deal(room):
            # The dropped player was the last one holding up the deal.
            room_service.deal_round(room)
        self._reconnect_deadlines[player_id] = now + timedelta(seconds=self.grace_seconds)
        if room.phase == PHASE_PLAYER_TURNS and room.active_player_id == player_id:
            self._auto_stand_deadlines[player_id] = now + timedelta(seconds=self.auto_stand_seconds)
        return room

    def next_round(self, player_id: str, code: str) -> tuple[Room | None, list[str]]:
        room = self.registry.get_room(code)
        if not room or room.host_id != player_id or room.phase != room_service.PHASE_RESULTS:
            return None, []

        purged = [player.player_id for player in room.players if player.disconnected]
        for purged_id in purged:
            self.remove_player(purged_id)
        if not room_service.next_round(room, room.host_id):
            return None, purged
        return room, purged

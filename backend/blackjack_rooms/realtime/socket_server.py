import asyncio
import logging
import re
from uuid import uuid4

import socketio
from pydantic import BaseModel, ValidationError

from blackjack_rooms.core.config import get_settings
from blackjack_rooms.db.session import SessionLocal
from blackjack_rooms.schemas.room import (
    CreateRoomRequest,
    JoinRoomRequest,
    PlaceBetRequest,
    PlayerActionRequest,
    RejoinRoomRequest,
    RoomCodeRequest,
)
from blackjack_rooms.services import room_service, stats_service
from blackjack_rooms.services.rate_limit_service import rate_limit_service
from blackjack_rooms.services.room_service import PHASE_DEALER_TURN, PHASE_RESULTS, Room, RoomRegistry
from blackjack_rooms.services.session_service import (
    EVENT_AUTO_STAND,
    REASON_MESSAGES,
    REASON_ROOM_NOT_FOUND,
    RoomJoinError,
    SessionManager,
)

logger = logging.getLogger(__name__)

settings = get_settings()
sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins="*")

AUTO_STAND_SECONDS = max(1.0, settings.auto_stand_delay_seconds)
RECONNECT_GRACE_SECONDS = max(5, settings.reconnect_grace_seconds)
TIMER_TICK_SECONDS = max(0.25, settings.timer_tick_seconds)
DEALER_DRAW_DELAY_SECONDS = max(0.0, settings.dealer_draw_delay_seconds)
DEALER_SETTLE_DELAY_SECONDS = max(0.0, settings.dealer_settle_delay_seconds)
PLAYER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{6,64}$")


def build_session_manager() -> SessionManager:
    registry = RoomRegistry(
        shoe_decks=settings.shoe_decks,
        reshuffle_threshold=settings.shoe_reshuffle_threshold,
        max_players=settings.max_players_per_room,
        max_hands_per_player=settings.max_hands_per_player,
    )
    return SessionManager(
        registry,
        starting_chips=settings.starting_chips,
        auto_stand_seconds=AUTO_STAND_SECONDS,
        grace_seconds=RECONNECT_GRACE_SECONDS,
    )


session_manager = build_session_manager()
_dealer_tasks: dict[str, asyncio.Task] = {}
_timer_task: asyncio.Task | None = None


def _room_channel(code: str) -> str:
    return f"room:{code}"


def _rejected(error: str = "rejected") -> dict:
    return {"ok": False, "error": error}


def _room_not_found() -> dict:
    return {"ok": False, "error": REASON_ROOM_NOT_FOUND, "message": REASON_MESSAGES[REASON_ROOM_NOT_FOUND]}


def _parse(model: type[BaseModel], data: dict | None) -> BaseModel | None:
    try:
        return model.model_validate(data or {})
    except ValidationError:
        return None


def _resolve_player_id(auth: dict | None) -> str:
    candidate = auth.get("player_id") if isinstance(auth, dict) else None
    if isinstance(candidate, str) and PLAYER_ID_PATTERN.match(candidate.strip()):
        return candidate.strip()
    return uuid4().hex


def _is_socket_event_allowed(sid: str, event_name: str) -> bool:
    if not settings.rate_limit_enabled:
        return True
    player_id = session_manager.player_for_connection(sid) or sid
    decision = rate_limit_service.check(
        f"ws:event:{event_name}:{player_id}",
        limit=settings.websocket_event_limit,
        window_seconds=settings.websocket_event_window_seconds,
    )
    return decision.allowed


async def _socket_rate_limited_payload(sid: str, event_name: str) -> dict:
    await sio.emit(
        "rate_limited",
        {"event": event_name, "message": "Too many requests. Slow down."},
        room=sid,
    )
    return _rejected("rate limit exceeded")


async def _join_rejected_payload(sid: str, exc: RoomJoinError) -> dict:
    logger.info("Join rejected for %s: %s", session_manager.player_for_connection(sid), exc.reason)
    await sio.emit("error_msg", {"error": exc.reason, "message": exc.message}, room=sid)
    return {"ok": False, "error": exc.reason, "message": exc.message}


def _record_round_stats(room: Room) -> None:
    summaries = room_service.summarize_round(room)
    db = SessionLocal()
    try:
        stats_service.record_round_results(db, summaries)
    except Exception:
        logger.exception("Failed to record round %s for room %s", room.round_number, room.code)
    finally:
        db.close()


async def _publish_room(room: Room) -> None:
    await sio.emit("room_update", room_service.serialize_room(room), room=_room_channel(room.code))
    if room.phase == PHASE_RESULTS and room.recorded_round != room.round_number:
        room.recorded_round = room.round_number
        _record_round_stats(room)
    if room.phase == PHASE_DEALER_TURN:
        _ensure_dealer_turn(room.code)


async def _publish_room_closed(code: str) -> None:
    await sio.emit("room_closed", {"code": code}, room=_room_channel(code))


async def _publish_departure(sid: str | None, code: str | None, room: Room | None) -> None:
    if not code:
        return
    if sid:
        await sio.leave_room(sid, _room_channel(code))
    if room:
        await _publish_room(room)
    else:
        await _publish_room_closed(code)


def _live_dealer_room(code: str) -> Room | None:
    room = session_manager.registry.get_room(code)
    if not room or room.phase != PHASE_DEALER_TURN:
        return None
    return room


async def _run_dealer_turn(code: str) -> None:
    try:
        while True:
            room = _live_dealer_room(code)
            if not room or not room_service.dealer_needs_card(room):
                break
            await asyncio.sleep(DEALER_DRAW_DELAY_SECONDS)
            room = _live_dealer_room(code)
            if not room:
                return
            room_service.draw_dealer_card(room)
            await sio.emit("room_update", room_service.serialize_room(room), room=_room_channel(code))

        await asyncio.sleep(DEALER_SETTLE_DELAY_SECONDS)
        room = _live_dealer_room(code)
        if not room:
            return
        room_service.resolve_results(room)
        await _publish_room(room)
    except Exception:
        logger.exception("Dealer turn failed for room %s", code)
    finally:
        _dealer_tasks.pop(code, None)


def _ensure_dealer_turn(code: str) -> None:
    task = _dealer_tasks.get(code)
    if task and not task.done():
        return
    _dealer_tasks[code] = sio.start_background_task(_run_dealer_turn, code)


async def _process_deadlines() -> None:
    for outcome in session_manager.process_deadlines():
        channel = _room_channel(outcome.room_code)
        if outcome.kind == EVENT_AUTO_STAND:
            await sio.emit(
                "turn_auto_stood",
                {"code": outcome.room_code, "player_id": outcome.player_id},
                room=channel,
            )
        else:
            await sio.emit(
                "player_auto_removed",
                {
                    "code": outcome.room_code,
                    "player_id": outcome.player_id,
                    "reason": outcome.kind,
                },
                room=channel,
            )
        if outcome.room:
            await _publish_room(outcome.room)
        else:
            await _publish_room_closed(outcome.room_code)


async def _timer_loop() -> None:
    while True:
        await asyncio.sleep(TIMER_TICK_SECONDS)
        try:
            await _process_deadlines()
        except Exception:
            logger.exception("Room timer loop failed")


def _ensure_timer_task() -> None:
    global _timer_task
    if _timer_task and not _timer_task.done():
        return
    _timer_task = sio.start_background_task(_timer_loop)


def _get_room_for_request(code: str) -> Room | None:
    return session_manager.registry.get_room(code.strip())


@sio.event
async def connect(sid: str, environ: dict, auth: dict | None = None) -> bool:
    player_id = _resolve_player_id(auth)
    _ensure_timer_task()
    session_manager.bind_connection(sid, player_id)
    await sio.emit(
        "system",
        {
            "message": "connected",
            "player_id": player_id,
            "auto_stand_seconds": AUTO_STAND_SECONDS,
            "reconnect_grace_seconds": RECONNECT_GRACE_SECONDS,
        },
        room=sid,
    )

    restored_code = session_manager.room_code_for_player(player_id)
    restored_room = None
    if restored_code:
        try:
            restored_room = session_manager.rejoin_room(player_id, restored_code, sid)
        except RoomJoinError:
            restored_room = None
    if restored_room:
        await sio.enter_room(sid, _room_channel(restored_room.code))
    await sio.emit(
        "session_restored",
        {
            "code": restored_room.code if restored_room else None,
            "recovered": restored_room is not None,
        },
        room=sid,
    )
    if restored_room:
        await _publish_room(restored_room)
    return True


@sio.event
async def disconnect(sid: str) -> None:
    room = session_manager.handle_disconnect(sid)
    if room:
        logger.info("Connection %s dropped from room %s", sid, room.code)
        await _publish_room(room)


@sio.event
async def create_room(sid: str, data: dict | None = None) -> dict:
    player_id = session_manager.player_for_connection(sid)
    if not player_id:
        return _rejected("unauthorized")
    if not _is_socket_event_allowed(sid, "create_room"):
        return await _socket_rate_limited_payload(sid, "create_room")
    payload = _parse(CreateRoomRequest, data)
    if payload is None:
        return _rejected("invalid payload")

    previous_code = session_manager.room_code_for_player(player_id)
    room, previous_room = session_manager.create_room(player_id, payload.name)
    await _publish_departure(sid, previous_code, previous_room)
    await sio.enter_room(sid, _room_channel(room.code))
    await sio.emit("room_created", {"code": room.code}, room=sid)
    await _publish_room(room)
    return {"ok": True, "code": room.code, "player_id": player_id}


@sio.event
async def join_room(sid: str, data: dict | None = None) -> dict:
    player_id = session_manager.player_for_connection(sid)
    if not player_id:
        return _rejected("unauthorized")
    if not _is_socket_event_allowed(sid, "join_room"):
        return await _socket_rate_limited_payload(sid, "join_room")
    payload = _parse(JoinRoomRequest, data)
    if payload is None:
        return _rejected("invalid payload")

    previous_code = session_manager.room_code_for_player(player_id)
    try:
        room, previous_room = session_manager.join_room(player_id, payload.code.strip(), payload.name)
    except RoomJoinError as exc:
        return await _join_rejected_payload(sid, exc)

    await _publish_departure(sid, previous_code, previous_room)
    await sio.enter_room(sid, _room_channel(room.code))
    await sio.emit("room_joined", {"code": room.code}, room=sid)
    await _publish_room(room)
    return {"ok": True, "code": room.code, "player_id": player_id}


@sio.event
async def rejoin_room(sid: str, data: dict | None = None) -> dict:
    player_id = session_manager.player_for_connection(sid)
    if not player_id:
        return _rejected("unauthorized")
    if not _is_socket_event_allowed(sid, "rejoin_room"):
        return await _socket_rate_limited_payload(sid, "rejoin_room")
    payload = _parse(RejoinRoomRequest, data)
    if payload is None:
        return _rejected("invalid payload")

    try:
        room = session_manager.rejoin_room(player_id, payload.code.strip(), sid)
    except RoomJoinError as exc:
        return await _join_rejected_payload(sid, exc)

    await sio.enter_room(sid, _room_channel(room.code))
    await sio.emit("room_joined", {"code": room.code, "rejoined": True}, room=sid)
    await _publish_room(room)
    return {"ok": True, "code": room.code, "player_id": player_id}


@sio.event
async def leave_room(sid: str, data: dict | None = None) -> dict:
    player_id = session_manager.player_for_connection(sid)
    if not player_id:
        return _rejected("unauthorized")
    if not _is_socket_event_allowed(sid, "leave_room"):
        return await _socket_rate_limited_payload(sid, "leave_room")

    code, room = session_manager.leave_room(player_id)
    if not code:
        return {"ok": True}
    await _publish_departure(sid, code, room)
    await sio.emit("room_left", {"code": code}, room=sid)
    return {"ok": True, "code": code}


@sio.event
async def start_game(sid: str, data: dict | None = None) -> dict:
    player_id = session_manager.player_for_connection(sid)
    if not player_id:
        return _rejected("unauthorized")
    if not _is_socket_event_allowed(sid, "start_game"):
        return await _socket_rate_limited_payload(sid, "start_game")
    payload = _parse(RoomCodeRequest, data)
    if payload is None:
        return _rejected("invalid payload")

    room = _get_room_for_request(payload.code)
    if not room:
        return _room_not_found()
    if not room_service.start_game(room, player_id):
        return _rejected()
    await _publish_room(room)
    return {"ok": True}


@sio.event
async def place_bet(sid: str, data: dict | None = None) -> dict:
    player_id = session_manager.player_for_connection(sid)
    if not player_id:
        return _rejected("unauthorized")
    if not _is_socket_event_allowed(sid, "place_bet"):
        return await _socket_rate_limited_payload(sid, "place_bet")
    payload = _parse(PlaceBetRequest, data)
    if payload is None:
        return _rejected("invalid payload")

    room = _get_room_for_request(payload.code)
    if not room:
        return _room_not_found()
    if not room_service.place_bet(room, player_id, payload.amount):
        return _rejected()
    await _publish_room(room)
    return {"ok": True, "phase": room.phase}


@sio.event
async def player_action(sid: str, data: dict | None = None) -> dict:
    player_id = session_manager.player_for_connection(sid)
    if not player_id:
        return _rejected("unauthorized")
    if not _is_socket_event_allowed(sid, "player_action"):
        return await _socket_rate_limited_payload(sid, "player_action")
    payload = _parse(PlayerActionRequest, data)
    if payload is None:
        return _rejected("invalid payload")

    room = _get_room_for_request(payload.code)
    if not room:
        return _room_not_found()
    if not room_service.apply_player_action(room, player_id, payload.action, payload.hand_index):
        return _rejected()
    await _publish_room(room)
    return {"ok": True, "phase": room.phase}


@sio.event
async def next_round(sid: str, data: dict | None = None) -> dict:
    player_id = session_manager.player_for_connection(sid)
    if not player_id:
        return _rejected("unauthorized")
    if not _is_socket_event_allowed(sid, "next_round"):
        return await _socket_rate_limited_payload(sid, "next_round")
    payload = _parse(RoomCodeRequest, data)
    if payload is None:
        return _rejected("invalid payload")

    code = payload.code.strip()
    if not _get_room_for_request(code):
        return _room_not_found()
    room, purged = session_manager.next_round(player_id, code)
    for purged_id in purged:
        await sio.emit(
            "player_auto_removed",
            {"code": code, "player_id": purged_id, "reason": "removed_at_round_boundary"},
            room=_room_channel(code),
        )
    if not room:
        return _rejected()
    await _publish_room(room)
    return {"ok": True, "removed": purged}


@sio.event
async def sync_state(sid: str, data: dict | None = None) -> dict:
    player_id = session_manager.player_for_connection(sid)
    if not player_id:
        return _rejected("unauthorized")
    if not _is_socket_event_allowed(sid, "sync_state"):
        return await _socket_rate_limited_payload(sid, "sync_state")

    room = session_manager.room_for_player(player_id)
    if not room:
        return {"ok": True, "code": None}
    snapshot = room_service.serialize_room(room)
    await sio.emit("room_update", snapshot, room=sid)
    return {"ok": True, "code": room.code, "room": snapshot}


def build_socket_app(api_app) -> socketio.ASGIApp:
    return socketio.ASGIApp(sio, other_asgi_app=api_app, socketio_path="socket.io")

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Dict, Optional

PROTOCOL_VERSION = 1

DRAFT_STARTED = "draft-started"
NEW_PLAYER = "new-player"
PLAYER_SELECTED = "player-selected"
PACKS_ROTATED = "packs-rotated"
GRID_SELECTION = "grid-selection"
DRAFT_FINISHED = "draft-finished"

# Fields each event must carry, with their expected types.
EVENT_FIELDS: Dict[str, Dict[str, type]] = {
    DRAFT_STARTED: {},
    NEW_PLAYER: {
        "turn": int,
        "player_id": int,
        "current_player": int,
        "accepted_pile_index": int,
        "finished": bool,
    },
    PLAYER_SELECTED: {"turn": int, "player_index": int, "pack_index": int, "card_index": int},
    PACKS_ROTATED: {"turn": int, "round": int, "pack_assignments": list},
    GRID_SELECTION: {
        "turn": int,
        "player": int,
        "next_player": int,
        "selection_type": str,
        "index": int,
        "is_draft_finished": bool,
        "completed_players": list,
    },
    DRAFT_FINISHED: {},
}


def now_ts() -> str:
    return datetime.now(timezone.utc).isoformat()


def envelope(msg_type: str, payload: Dict[str, object]) -> str:
    body = {"type": msg_type, "v": PROTOCOL_VERSION, "ts": now_ts()}
    body.update(payload)
    return json.dumps(body)


def decode(raw: str | bytes) -> Dict[str, object]:
    try:
        message = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return message if isinstance(message, dict) else {}


def event_message(session_id: str, origin: str, event_id: str, event: Dict[str, object]) -> Dict[str, object]:
    return {"session_id": session_id, "origin": origin, "event_id": event_id, "event": event}


def validate_event(event: object) -> Optional[str]:
    """Return a reason the event is malformed, or None when it is usable."""
    if not isinstance(event, dict):
        return "event must be an object"
    name = event.get("ev")
    fields = EVENT_FIELDS.get(name)  # type: ignore[arg-type]
    if fields is None:
        return f"unknown event {name!r}"
    for field_name, expected in fields.items():
        value = event.get(field_name)
        # bool is an int subclass; keep the two apart.
        if expected is int and isinstance(value, bool):
            return f"{field_name} must be an integer"
        if expected is int and isinstance(value, int) and value < 0:
            return f"{field_name} must not be negative"
        if not isinstance(value, expected):
            return f"{field_name} must be {expected.__name__}"
    return None

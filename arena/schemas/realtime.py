from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from arena.core.enums import BattleStatus, RealtimeEvent
from arena.utils.misc import get_utc_iso_now

EVENT_SCHEMA_VERSION = 2

# v1 payload keys and the v2 field they now live in
_LEGACY_FIELDS = {
    "lobbyId": "battle_id",
    "lobby_id": "battle_id",
    "user_id": "player_id",
    "newStatus": "status",
    "new_status": "status",
    "selected_card_id": "card_id",
}

# v1 event names and the v2 event (plus implied status) they map to
_LEGACY_EVENTS: dict[str, tuple[RealtimeEvent, BattleStatus | None]] = {
    "new_challenge": (RealtimeEvent.BATTLE_STATUS_CHANGED, BattleStatus.PENDING),
    "challenge_accepted": (RealtimeEvent.BATTLE_STATUS_CHANGED, BattleStatus.ACTIVE),
    "challenge_declined": (RealtimeEvent.BATTLE_STATUS_CHANGED, BattleStatus.DECLINED),
    "both_submitted": (RealtimeEvent.BATTLE_STATUS_CHANGED, BattleStatus.CARDS_REVEALED),
    "battle_resolved": (RealtimeEvent.BATTLE_STATUS_CHANGED, BattleStatus.COMPLETED),
    "battle_over": (RealtimeEvent.BATTLE_STATUS_CHANGED, BattleStatus.COMPLETED),
    "card_submitted": (RealtimeEvent.CARD_SELECTED, None),
}


class BattleEventEnvelope(BaseModel):
    """Versioned realtime event.

    Payload data is informational only; consumers re-read the battle for
    authoritative state.
    """

    model_config = ConfigDict(frozen=True)

    version: int = EVENT_SCHEMA_VERSION
    event: RealtimeEvent
    battle_id: int
    status: BattleStatus | None = None
    player_id: int | None = None
    card_id: int | None = None
    message: str | None = None
    sent_at: str = Field(default_factory=get_utc_iso_now)


def upgrade_event(raw: Mapping[str, Any]) -> BattleEventEnvelope:
    """Build a current envelope from any supported payload version.

    Raises pydantic.ValidationError when the payload cannot be understood.
    """
    data = dict(raw)
    version = int(data.pop("version", 1))

    if version < EVENT_SCHEMA_VERSION:
        for old, new in _LEGACY_FIELDS.items():
            if old in data:
                value = data.pop(old)
                data.setdefault(new, value)

        legacy = _LEGACY_EVENTS.get(str(data.get("event")))
        if legacy:
            event, status = legacy
            data["event"] = event
            if status is not None:
                data.setdefault("status", status)

        # v1 nested the resolved battle under newState
        new_state = data.pop("newState", None)
        if isinstance(new_state, Mapping):
            data.setdefault("battle_id", new_state.get("id"))
            data.setdefault("status", new_state.get("status"))

    known = BattleEventEnvelope.model_fields.keys()
    return BattleEventEnvelope.model_validate(
        {key: value for key, value in data.items() if key in known}
    )

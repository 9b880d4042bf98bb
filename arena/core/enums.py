from enum import StrEnum


class CardType(StrEnum):
    HUMANOID = "humanoid"
    WEAPON = "weapon"


class CardRarity(StrEnum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"


class HumanoidArchetype(StrEnum):
    SPACE_MARINE = "Space Marine"
    GALACTIC_RANGER = "Galactic Ranger"
    VOID_SORCERER = "Void Sorcerer"


class CardAttribute(StrEnum):
    STR = "str"
    DEX = "dex"
    INT = "int"


class BattleStatus(StrEnum):
    PENDING = "pending"
    ACTIVE = "active"
    CARDS_REVEALED = "cards_revealed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DECLINED = "declined"
    CANCELLED = "cancelled"


class ResolutionWinner(StrEnum):
    A = "a"
    B = "b"
    DRAW = "draw"


class ResolutionTrigger(StrEnum):
    MANUAL = "manual"
    COUNTDOWN = "countdown"
    RETRY = "retry"


class RealtimeEvent(StrEnum):
    CARD_SELECTED = "card_selected"
    BATTLE_STATUS_CHANGED = "battle_status_changed"
    BATTLE_RESOLUTION_ERROR = "battle_resolution_error"


class BattleErrorCode(StrEnum):
    BATTLE_NOT_FOUND = "BATTLE_NOT_FOUND"
    PLAYER_NOT_FOUND = "PLAYER_NOT_FOUND"
    PLAYER_NOT_IN_BATTLE = "PLAYER_NOT_IN_BATTLE"
    INVALID_CHALLENGE = "INVALID_CHALLENGE"
    INVALID_BATTLE_STATUS = "INVALID_BATTLE_STATUS"
    CARD_NOT_OWNED = "CARD_NOT_OWNED"
    INVALID_CARD_TYPE = "INVALID_CARD_TYPE"
    CARD_ALREADY_SELECTED = "CARD_ALREADY_SELECTED"
    CARD_ALREADY_STAKED = "CARD_ALREADY_STAKED"
    RESOLUTION_NOT_DUE = "RESOLUTION_NOT_DUE"
    STALE_BATTLE_STATE = "STALE_BATTLE_STATE"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    PRIZE_TRANSFER_FAILED = "PRIZE_TRANSFER_FAILED"
    BATTLE_STATE_CORRUPTED = "BATTLE_STATE_CORRUPTED"


class ErrorKind(StrEnum):
    VALIDATION = "validation"
    CONFLICT = "conflict"
    TRANSIENT = "transient"
    FATAL = "fatal"


class EventType(StrEnum):
    CHALLENGE_SENT = "challenge_sent"
    CHALLENGE_ACCEPTED = "challenge_accepted"
    CHALLENGE_DECLINED = "challenge_declined"
    CHALLENGE_CANCELLED = "challenge_cancelled"
    CHALLENGE_EXPIRED = "challenge_expired"
    CARD_SELECTED = "card_selected"
    BATTLE_WON = "battle_won"
    BATTLE_LOST = "battle_lost"
    BATTLE_DRAW = "battle_draw"

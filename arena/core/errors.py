from typing import ClassVar

from arena.core.enums import BattleErrorCode, ErrorKind


class BattleError(Exception):
    """Base class for every failure the battle services report to callers.

    Each subclass fixes the error code, its kind and the HTTP status the API layer
    answers with. Conflict and transient errors are the only retryable kinds.
    """

    code: ClassVar[BattleErrorCode]
    kind: ClassVar[ErrorKind] = ErrorKind.VALIDATION
    status_code: ClassVar[int] = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def retryable(self) -> bool:
        return self.kind in {ErrorKind.CONFLICT, ErrorKind.TRANSIENT}


class BattleNotFoundError(BattleError):
    code = BattleErrorCode.BATTLE_NOT_FOUND
    status_code = 404


class PlayerNotFoundError(BattleError):
    code = BattleErrorCode.PLAYER_NOT_FOUND
    status_code = 404


class PlayerNotInBattleError(BattleError):
    code = BattleErrorCode.PLAYER_NOT_IN_BATTLE
    status_code = 403


class InvalidChallengeError(BattleError):
    code = BattleErrorCode.INVALID_CHALLENGE


class InvalidBattleStatusError(BattleError):
    code = BattleErrorCode.INVALID_BATTLE_STATUS
    status_code = 409


class CardNotOwnedError(BattleError):
    code = BattleErrorCode.CARD_NOT_OWNED
    status_code = 403


class InvalidCardTypeError(BattleError):
    code = BattleErrorCode.INVALID_CARD_TYPE


class CardAlreadyStakedError(BattleError):
    code = BattleErrorCode.CARD_ALREADY_STAKED
    status_code = 409


class ResolutionNotDueError(BattleError):
    code = BattleErrorCode.RESOLUTION_NOT_DUE
    status_code = 409


class CardAlreadySelectedError(BattleError):
    code = BattleErrorCode.CARD_ALREADY_SELECTED
    kind = ErrorKind.CONFLICT
    status_code = 409


class StaleBattleStateError(BattleError):
    code = BattleErrorCode.STALE_BATTLE_STATE
    kind = ErrorKind.CONFLICT
    status_code = 409


class StoreUnavailableError(BattleError):
    code = BattleErrorCode.STORE_UNAVAILABLE
    kind = ErrorKind.TRANSIENT
    status_code = 503


class InvalidTransitionError(BattleError):
    code = BattleErrorCode.INVALID_TRANSITION
    kind = ErrorKind.FATAL
    status_code = 500


class PrizeTransferError(BattleError):
    code = BattleErrorCode.PRIZE_TRANSFER_FAILED
    kind = ErrorKind.FATAL
    status_code = 500


class BattleStateCorruptedError(BattleError):
    code = BattleErrorCode.BATTLE_STATE_CORRUPTED
    kind = ErrorKind.FATAL
    status_code = 500

import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from arena.core.enums import BattleStatus, ResolutionWinner
from arena.models.battle import BattleResult
from arena.schemas.card import BattleCard


class Resolution(BaseModel):
    """Output of a resolution policy for card A against card B."""

    model_config = ConfigDict(frozen=True)

    winner: ResolutionWinner
    score_a: int
    score_b: int
    explanation: str
    rule: str


class PendingResolution(BaseModel):
    """Resolution cached on the battle between in_progress and completed.

    Carries everything the completion step needs so a retry never recomputes the
    winner.
    """

    winner_id: int | None
    loser_id: int | None
    transferred_card_id: int | None
    challenger_score: int
    opponent_score: int
    explanation: str
    rule: str


class ChallengeCreate(BaseModel):
    opponent_id: int = Field(validation_alias=AliasChoices("opponent_id", "challenged_player_id"))


class ChallengeResponse(BaseModel):
    accepted: bool


class SelectCardRequest(BaseModel):
    """Card selection body. ``selected_card_id`` is the name older clients send."""

    card_id: int = Field(validation_alias=AliasChoices("card_id", "selected_card_id"))


class SelectionOutcome(BaseModel):
    battle_id: int
    player_id: int
    card_id: int
    battle_status: BattleStatus
    both_submitted: bool
    """True only for the submission whose reveal moved the battle to cards_revealed."""


class ResolutionOutcome(BaseModel):
    battle_id: int
    status: BattleStatus
    result: BattleResult | None = None
    already_completed: bool = False


class SelectionView(BaseModel):
    player_id: int
    has_selected: bool
    card: BattleCard | None = None
    """Hidden for the opponent until both cards are revealed."""


class BattleView(BaseModel):
    id: int
    challenger_id: int
    opponent_id: int
    status: BattleStatus
    winner_id: int | None
    explanation: str | None
    reveal_deadline: datetime.datetime | None
    completed_at: datetime.datetime | None
    updated_at: datetime.datetime
    selections: list[SelectionView]
    result: BattleResult | None = None


class SweepReport(BaseModel):
    expired_challenges: int = 0
    revealed_battles: int = 0
    resolved_battles: int = 0
    failed_battles: int = 0


class BattleSummary(BaseModel):
    """A battle row without the resolution cache, for challenge endpoints and history."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    challenger_id: int
    opponent_id: int
    status: BattleStatus
    winner_id: int | None
    explanation: str | None
    reveal_deadline: datetime.datetime | None
    completed_at: datetime.datetime | None
    created_at: datetime.datetime
    updated_at: datetime.datetime

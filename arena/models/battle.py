import datetime

import sqlmodel

from arena.core.enums import BattleStatus
from arena.utils.misc import get_utc_now

from ._base import BaseModel


class BattleInstance(BaseModel, table=True):
    """One challenge between two players, from issue to completion.

    ``status`` is only ever written through a conditional update on its previous
    value. ``winner_id`` is set iff the battle completed without a draw.
    """

    __tablename__: str = "battle_instances"

    id: int = sqlmodel.Field(primary_key=True, index=True, default=None)
    challenger_id: int = sqlmodel.Field(
        foreign_key="players.id", index=True, sa_type=sqlmodel.BigInteger
    )
    opponent_id: int = sqlmodel.Field(
        foreign_key="players.id", index=True, sa_type=sqlmodel.BigInteger
    )
    status: BattleStatus = sqlmodel.Field(default=BattleStatus.PENDING, index=True)
    winner_id: int | None = sqlmodel.Field(
        foreign_key="players.id",
        index=True,
        nullable=True,
        default=None,
        sa_type=sqlmodel.BigInteger,
    )
    explanation: str | None = None
    reveal_deadline: datetime.datetime | None = sqlmodel.Field(
        default=None, nullable=True, sa_type=sqlmodel.DateTime(timezone=True)
    )
    """Server-side end of the reveal countdown, set when both cards are in."""
    resolution: dict | None = sqlmodel.Field(
        default=None, sa_column=sqlmodel.Column(sqlmodel.JSON, nullable=True)
    )
    """Cached resolution output while the battle is in progress."""
    completed_at: datetime.datetime | None = sqlmodel.Field(
        default=None, nullable=True, sa_type=sqlmodel.DateTime(timezone=True)
    )

    def is_participant(self, player_id: int) -> bool:
        return player_id in {self.challenger_id, self.opponent_id}

    def other_player(self, player_id: int) -> int:
        return self.opponent_id if player_id == self.challenger_id else self.challenger_id


class CardSelection(BaseModel, table=True):
    __tablename__: str = "card_selections"
    __table_args__ = (
        sqlmodel.UniqueConstraint("battle_id", "player_id", name="uq_card_selection_battle_player"),
    )

    id: int = sqlmodel.Field(primary_key=True, index=True, default=None)
    battle_id: int = sqlmodel.Field(foreign_key="battle_instances.id", index=True)
    player_id: int = sqlmodel.Field(
        foreign_key="players.id", index=True, sa_type=sqlmodel.BigInteger
    )
    card_id: int = sqlmodel.Field(foreign_key="cards.id", index=True)
    submitted_at: datetime.datetime = sqlmodel.Field(
        default_factory=get_utc_now, sa_type=sqlmodel.DateTime(timezone=True)
    )


class BattleResult(BaseModel, table=True):
    __tablename__: str = "battle_results"

    id: int = sqlmodel.Field(primary_key=True, index=True, default=None)
    battle_id: int = sqlmodel.Field(foreign_key="battle_instances.id", unique=True, index=True)
    winner_id: int | None = sqlmodel.Field(
        foreign_key="players.id", nullable=True, default=None, sa_type=sqlmodel.BigInteger
    )
    loser_id: int | None = sqlmodel.Field(
        foreign_key="players.id", nullable=True, default=None, sa_type=sqlmodel.BigInteger
    )
    transferred_card_id: int | None = sqlmodel.Field(
        foreign_key="cards.id", nullable=True, default=None
    )
    explanation: str
    challenger_score: int = 0
    opponent_score: int = 0
    rule: str

import datetime

import sqlmodel

from arena.core.enums import CardRarity, CardType
from arena.schemas.card import BattleCard, CardAttributes
from arena.utils.misc import get_utc_now

from ._base import BaseModel


class Card(BaseModel, table=True):
    """A card owned by exactly one player.

    Everything except ``owner_id`` is fixed at creation; ownership moves once, when
    the card is the losing stake of a battle.
    """

    __tablename__: str = "cards"

    id: int = sqlmodel.Field(primary_key=True, index=True, default=None)
    owner_id: int = sqlmodel.Field(
        foreign_key="players.id", index=True, sa_type=sqlmodel.BigInteger
    )
    card_type: CardType
    name: str = sqlmodel.Field(max_length=100, index=True)
    rarity: CardRarity

    strength: int = sqlmodel.Field(default=0, ge=0)
    dexterity: int = sqlmodel.Field(default=0, ge=0)
    intelligence: int = sqlmodel.Field(default=0, ge=0)

    obtained_at: datetime.datetime = sqlmodel.Field(
        default_factory=get_utc_now, sa_type=sqlmodel.DateTime(timezone=True)
    )

    @property
    def attributes(self) -> CardAttributes:
        return CardAttributes(
            strength=self.strength, dexterity=self.dexterity, intelligence=self.intelligence
        )

    def to_battle_card(self) -> BattleCard:
        return BattleCard(
            id=self.id,
            owner_id=self.owner_id,
            card_type=self.card_type,
            name=self.name,
            rarity=self.rarity,
            attributes=self.attributes,
        )

    def __str__(self) -> str:
        return f"{self.name} (#{self.id})"

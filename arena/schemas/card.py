from pydantic import BaseModel, ConfigDict, Field

from arena.core.enums import CardAttribute, CardRarity, CardType, HumanoidArchetype

# Attribute each humanoid archetype specialises in
PRIMARY_ATTRIBUTES: dict[HumanoidArchetype, CardAttribute] = {
    HumanoidArchetype.SPACE_MARINE: CardAttribute.STR,
    HumanoidArchetype.GALACTIC_RANGER: CardAttribute.DEX,
    HumanoidArchetype.VOID_SORCERER: CardAttribute.INT,
}


class CardAttributes(BaseModel):
    """Battle attributes, serialized with their short names (str, dex, int)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    strength: int = Field(ge=0, alias="str")
    dexterity: int = Field(ge=0, alias="dex")
    intelligence: int = Field(ge=0, alias="int")

    @property
    def total(self) -> int:
        return self.strength + self.dexterity + self.intelligence

    def get(self, attribute: CardAttribute) -> int:
        match attribute:
            case CardAttribute.STR:
                return self.strength
            case CardAttribute.DEX:
                return self.dexterity
            case CardAttribute.INT:
                return self.intelligence


class BattleCard(BaseModel):
    """Immutable snapshot of a card as it enters a battle."""

    model_config = ConfigDict(frozen=True)

    id: int
    owner_id: int
    card_type: CardType
    name: str
    rarity: CardRarity
    attributes: CardAttributes

    @property
    def archetype(self) -> HumanoidArchetype | None:
        if self.card_type != CardType.HUMANOID:
            return None
        try:
            return HumanoidArchetype(self.name)
        except ValueError:
            return None

    @property
    def primary_attribute(self) -> CardAttribute | None:
        archetype = self.archetype
        return PRIMARY_ATTRIBUTES[archetype] if archetype else None


class CardListParams(BaseModel):
    """Query parameters for listing a player's cards."""

    card_type: CardType | None = None
    rarity: CardRarity | None = None

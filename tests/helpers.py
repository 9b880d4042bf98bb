from arena.core.enums import CardRarity, CardType
from arena.models.card import Card
from arena.services.battle import BattleService
from arena.services.selection import SelectionService

ALICE = 1001
BOB = 1002
CAROL = 1003


def make_card(  # noqa: PLR0913
    owner_id: int,
    name: str,
    strength: int,
    dexterity: int,
    intelligence: int,
    *,
    card_type: CardType = CardType.HUMANOID,
    rarity: CardRarity = CardRarity.SILVER,
) -> Card:
    return Card(
        owner_id=owner_id,
        card_type=card_type,
        name=name,
        rarity=rarity,
        strength=strength,
        dexterity=dexterity,
        intelligence=intelligence,
    )


async def start_battle(
    battle_service: BattleService, challenger_id: int = ALICE, opponent_id: int = BOB
) -> int:
    """Create a challenge and accept it, returning the active battle's id."""
    battle = await battle_service.create_challenge(challenger_id, opponent_id)
    battle_id = battle.id
    await battle_service.respond_to_challenge(battle_id, opponent_id, accepted=True)
    return battle_id


async def reveal_battle(  # noqa: PLR0913
    battle_service: BattleService,
    selection_service: SelectionService,
    challenger_card: int,
    opponent_card: int,
    challenger_id: int = ALICE,
    opponent_id: int = BOB,
) -> int:
    """Start a battle and have both players select, leaving it in cards_revealed."""
    battle_id = await start_battle(battle_service, challenger_id, opponent_id)
    await selection_service.select_card(battle_id, challenger_id, challenger_card)
    await selection_service.select_card(battle_id, opponent_id, opponent_card)
    return battle_id

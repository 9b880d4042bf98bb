"""Battle resolution policies.

A policy is a pure function of the two staked cards. The orchestrator only talks to
the ``ResolutionPolicy`` protocol, so the rule can be swapped through configuration
without touching the state machine.

``attribute_sum`` is the canonical rule:

1. The higher ``str + dex + int`` total wins.
2. On equal totals, two cards of the same archetype compare the archetype's primary
   attribute; otherwise the card that wins more of the three head-to-head attribute
   comparisons wins.
3. Anything still level is a draw. There is no random tiebreak.
"""

from typing import Protocol

from arena.core.enums import CardAttribute, HumanoidArchetype, ResolutionWinner
from arena.schemas.battle import Resolution
from arena.schemas.card import BattleCard

# Each archetype beats the one it maps to
TYPE_ADVANTAGES: dict[HumanoidArchetype, HumanoidArchetype] = {
    HumanoidArchetype.VOID_SORCERER: HumanoidArchetype.SPACE_MARINE,
    HumanoidArchetype.SPACE_MARINE: HumanoidArchetype.GALACTIC_RANGER,
    HumanoidArchetype.GALACTIC_RANGER: HumanoidArchetype.VOID_SORCERER,
}


class ResolutionPolicy(Protocol):
    name: str

    def resolve(self, card_a: BattleCard, card_b: BattleCard) -> Resolution: ...


def _compare(value_a: int, value_b: int) -> ResolutionWinner:
    if value_a > value_b:
        return ResolutionWinner.A
    if value_b > value_a:
        return ResolutionWinner.B
    return ResolutionWinner.DRAW


def _attribute_lines(card_a: BattleCard, card_b: BattleCard) -> list[str]:
    lines = []
    for attribute in CardAttribute:
        value_a = card_a.attributes.get(attribute)
        value_b = card_b.attributes.get(attribute)
        lines.append(f"{attribute.upper()}: {value_a} vs {value_b}")
    return lines


def _verdict(winner: ResolutionWinner, card_a: BattleCard, card_b: BattleCard) -> str:
    if winner == ResolutionWinner.A:
        return f"{card_a.name} wins the battle!"
    if winner == ResolutionWinner.B:
        return f"{card_b.name} wins the battle!"
    return "The battle ends in a draw!"


def _head_to_head(card_a: BattleCard, card_b: BattleCard) -> tuple[int, int]:
    wins_a = wins_b = 0
    for attribute in CardAttribute:
        outcome = _compare(card_a.attributes.get(attribute), card_b.attributes.get(attribute))
        if outcome == ResolutionWinner.A:
            wins_a += 1
        elif outcome == ResolutionWinner.B:
            wins_b += 1
    return wins_a, wins_b


class AttributeSumPolicy:
    name = "attribute_sum"

    def resolve(self, card_a: BattleCard, card_b: BattleCard) -> Resolution:
        total_a = card_a.attributes.total
        total_b = card_b.attributes.total
        lines = [f"{card_a.name} vs {card_b.name}", *_attribute_lines(card_a, card_b)]
        lines.append(f"Total: {total_a} vs {total_b}")

        winner = _compare(total_a, total_b)
        if winner == ResolutionWinner.DRAW:
            winner, reason = self._break_tie(card_a, card_b)
            lines.append(reason)

        lines.append(_verdict(winner, card_a, card_b))
        return Resolution(
            winner=winner,
            score_a=total_a,
            score_b=total_b,
            explanation="\n".join(lines),
            rule=self.name,
        )

    @staticmethod
    def _break_tie(card_a: BattleCard, card_b: BattleCard) -> tuple[ResolutionWinner, str]:
        primary = card_a.primary_attribute
        if primary is not None and card_a.archetype == card_b.archetype:
            value_a = card_a.attributes.get(primary)
            value_b = card_b.attributes.get(primary)
            return (
                _compare(value_a, value_b),
                f"Tied totals; both are {card_a.archetype}, "
                f"comparing {primary.upper()}: {value_a} vs {value_b}",
            )

        wins_a, wins_b = _head_to_head(card_a, card_b)
        return (
            _compare(wins_a, wins_b),
            f"Tied totals; attributes won head-to-head: {wins_a} vs {wins_b}",
        )


class TypeTrianglePolicy:
    """Archetype advantage first, attributes second.

    Cards without a recognised archetype (e.g. renamed promo cards) are resolved
    by ``fallback``.
    """

    name = "type_triangle"

    def __init__(self, fallback: ResolutionPolicy | None = None) -> None:
        self.fallback = fallback or AttributeSumPolicy()

    def resolve(self, card_a: BattleCard, card_b: BattleCard) -> Resolution:
        archetype_a = card_a.archetype
        archetype_b = card_b.archetype
        if archetype_a is None or archetype_b is None:
            return self.fallback.resolve(card_a, card_b)

        total_a = card_a.attributes.total
        total_b = card_b.attributes.total
        lines = [f"{card_a.name} vs {card_b.name}"]

        if TYPE_ADVANTAGES[archetype_a] == archetype_b:
            winner = ResolutionWinner.A
            lines.append(f"{archetype_a} has the advantage over {archetype_b}")
        elif TYPE_ADVANTAGES[archetype_b] == archetype_a:
            winner = ResolutionWinner.B
            lines.append(f"{archetype_b} has the advantage over {archetype_a}")
        else:
            primary = card_a.primary_attribute
            assert primary is not None  # noqa: S101
            value_a = card_a.attributes.get(primary)
            value_b = card_b.attributes.get(primary)
            lines.append(
                f"Both are {archetype_a}, comparing {primary.upper()}: {value_a} vs {value_b}"
            )
            winner = _compare(value_a, value_b)
            if winner == ResolutionWinner.DRAW:
                lines.append(f"Comparing totals: {total_a} vs {total_b}")
                winner = _compare(total_a, total_b)

        lines.append(_verdict(winner, card_a, card_b))
        return Resolution(
            winner=winner,
            score_a=total_a,
            score_b=total_b,
            explanation="\n".join(lines),
            rule=self.name,
        )


RESOLUTION_POLICIES: dict[str, type[AttributeSumPolicy] | type[TypeTrianglePolicy]] = {
    AttributeSumPolicy.name: AttributeSumPolicy,
    TypeTrianglePolicy.name: TypeTrianglePolicy,
}


def get_resolution_policy(name: str) -> ResolutionPolicy:
    try:
        return RESOLUTION_POLICIES[name]()
    except KeyError:
        msg = f"Unknown resolution policy: {name}"
        raise ValueError(msg) from None

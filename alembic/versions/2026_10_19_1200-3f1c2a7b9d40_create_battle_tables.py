# pyright: reportAttributeAccessIssue=false, reportUndefinedVariable=false
"""Create battle tables

Revision ID: 3f1c2a7b9d40
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
import sqlmodel.sql.sqltypes

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f1c2a7b9d40"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

card_type = sa.Enum("HUMANOID", "WEAPON", name="cardtype")
card_rarity = sa.Enum("BRONZE", "SILVER", "GOLD", name="cardrarity")
battle_status = sa.Enum(
    "PENDING",
    "ACTIVE",
    "CARDS_REVEALED",
    "IN_PROGRESS",
    "COMPLETED",
    "DECLINED",
    "CANCELLED",
    name="battlestatus",
)
event_type = sa.Enum(
    "CHALLENGE_SENT",
    "CHALLENGE_ACCEPTED",
    "CHALLENGE_DECLINED",
    "CHALLENGE_CANCELLED",
    "CHALLENGE_EXPIRED",
    "CARD_SELECTED",
    "BATTLE_WON",
    "BATTLE_LOST",
    "BATTLE_DRAW",
    name="eventtype",
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "players",
        *_timestamps(),
        sa.Column("id", sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column("name", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_players_id"), "players", ["id"], unique=False)

    op.create_table(
        "cards",
        *_timestamps(),
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("owner_id", sa.BigInteger(), nullable=False),
        sa.Column("card_type", card_type, nullable=False),
        sa.Column("name", sqlmodel.sql.sqltypes.AutoString(length=100), nullable=False),
        sa.Column("rarity", card_rarity, nullable=False),
        sa.Column("strength", sa.Integer(), nullable=False),
        sa.Column("dexterity", sa.Integer(), nullable=False),
        sa.Column("intelligence", sa.Integer(), nullable=False),
        sa.Column("obtained_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["owner_id"], ["players.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_cards_id"), "cards", ["id"], unique=False)
    op.create_index(op.f("ix_cards_name"), "cards", ["name"], unique=False)
    op.create_index(op.f("ix_cards_owner_id"), "cards", ["owner_id"], unique=False)

    op.create_table(
        "battle_instances",
        *_timestamps(),
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("challenger_id", sa.BigInteger(), nullable=False),
        sa.Column("opponent_id", sa.BigInteger(), nullable=False),
        sa.Column("status", battle_status, nullable=False),
        sa.Column("winner_id", sa.BigInteger(), nullable=True),
        sa.Column("explanation", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("reveal_deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolution", sa.JSON(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["challenger_id"], ["players.id"]),
        sa.ForeignKeyConstraint(["opponent_id"], ["players.id"]),
        sa.ForeignKeyConstraint(["winner_id"], ["players.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    for column in ("id", "challenger_id", "opponent_id", "status", "winner_id"):
        op.create_index(
            op.f(f"ix_battle_instances_{column}"), "battle_instances", [column], unique=False
        )

    op.create_table(
        "card_selections",
        *_timestamps(),
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("battle_id", sa.Integer(), nullable=False),
        sa.Column("player_id", sa.BigInteger(), nullable=False),
        sa.Column("card_id", sa.Integer(), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["battle_id"], ["battle_instances.id"]),
        sa.ForeignKeyConstraint(["card_id"], ["cards.id"]),
        sa.ForeignKeyConstraint(["player_id"], ["players.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("battle_id", "player_id", name="uq_card_selection_battle_player"),
    )
    for column in ("id", "battle_id", "player_id", "card_id"):
        op.create_index(
            op.f(f"ix_card_selections_{column}"), "card_selections", [column], unique=False
        )

    op.create_table(
        "battle_results",
        *_timestamps(),
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("battle_id", sa.Integer(), nullable=False),
        sa.Column("winner_id", sa.BigInteger(), nullable=True),
        sa.Column("loser_id", sa.BigInteger(), nullable=True),
        sa.Column("transferred_card_id", sa.Integer(), nullable=True),
        sa.Column("explanation", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column("challenger_score", sa.Integer(), nullable=False),
        sa.Column("opponent_score", sa.Integer(), nullable=False),
        sa.Column("rule", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.ForeignKeyConstraint(["battle_id"], ["battle_instances.id"]),
        sa.ForeignKeyConstraint(["loser_id"], ["players.id"]),
        sa.ForeignKeyConstraint(["transferred_card_id"], ["cards.id"]),
        sa.ForeignKeyConstraint(["winner_id"], ["players.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_battle_results_id"), "battle_results", ["id"], unique=False)
    op.create_index(
        op.f("ix_battle_results_battle_id"), "battle_results", ["battle_id"], unique=True
    )

    op.create_table(
        "event_logs",
        *_timestamps(),
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("player_id", sa.BigInteger(), nullable=False),
        sa.Column("event_type", event_type, nullable=False),
        sa.Column("context", sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(["player_id"], ["players.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_event_logs_id"), "event_logs", ["id"], unique=False)
    op.create_index(op.f("ix_event_logs_player_id"), "event_logs", ["player_id"], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("event_logs")
    op.drop_table("battle_results")
    op.drop_table("card_selections")
    op.drop_table("battle_instances")
    op.drop_table("cards")
    op.drop_table("players")

    bind = op.get_bind()
    for enum in (event_type, battle_status, card_rarity, card_type):
        enum.drop(bind, checkfirst=True)

from typing import Literal

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

from arena.core.enums import CardType


class Config(BaseSettings):
    db_url: str
    env: Literal["prod", "dev"] = "prod"

    # JWT & token settings
    # IMPORTANT: set in environment for production
    jwt_secret: str | None = None
    jwt_algorithm: str = "HS256"
    access_token_ttl_seconds: int = 15 * 60  # 15 minutes

    # Battle flow
    reveal_countdown_seconds: int = 20
    challenge_timeout_seconds: int = 5 * 60
    resolution_policy: Literal["attribute_sum", "type_triangle"] = "attribute_sum"
    battle_card_types: list[CardType] = [CardType.HUMANOID]

    # Background scheduler (server-side reveal countdown)
    scheduler_enabled: bool = True
    scheduler_interval_seconds: float = 5.0

    # Realtime consumers fall back to polling at this interval
    watcher_poll_interval_seconds: float = 10.0

    @property
    def is_dev(self) -> bool:
        return self.env == "dev"


load_dotenv()
settings = Config()  # pyright: ignore[reportCallIssue]

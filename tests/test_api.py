from collections.abc import AsyncGenerator
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

from arena.core.security import create_access_token
from arena.main import app
from arena.services.battle_store import BattleStore
from tests.helpers import ALICE, BOB, CAROL


def auth(player_id: int) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(sub=str(player_id))}"}


@pytest.fixture
async def client(database: None) -> AsyncGenerator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


async def _active_battle(client: AsyncClient) -> int:
    response = await client.post("/api/battles/", json={"opponent_id": BOB}, headers=auth(ALICE))
    assert response.status_code == 200
    battle_id = response.json()["data"]["id"]

    response = await client.post(
        f"/api/battles/{battle_id}/respond", json={"accepted": True}, headers=auth(BOB)
    )
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "active"
    assert "resolution" not in response.json()["data"]
    return battle_id


async def test_healthz(client: AsyncClient) -> None:
    response = await client.get("/")

    assert response.status_code == 200
    assert response.json() == "OK"


async def test_requests_need_a_token(client: AsyncClient) -> None:
    response = await client.get("/api/battles/")

    assert response.status_code == 401
    assert response.json()["status"] == "error"
    assert response.json()["message"] == "Not authenticated"

    response = await client.get("/api/battles/", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid token"


async def test_full_battle(client: AsyncClient, cards: dict[str, int]) -> None:
    battle_id = await _active_battle(client)

    response = await client.post(
        f"/api/battles/{battle_id}/selection",
        json={"card_id": cards["alice_marine"]},
        headers=auth(ALICE),
    )
    assert response.status_code == 200
    assert response.json()["data"]["both_submitted"] is False

    # Older clients send selected_card_id
    response = await client.post(
        f"/api/battles/{battle_id}/selection",
        json={"selected_card_id": cards["bob_ranger"]},
        headers=auth(BOB),
    )
    assert response.status_code == 200
    assert response.json()["data"]["battle_status"] == "cards_revealed"

    response = await client.post(f"/api/battles/{battle_id}/resolve", headers=auth(ALICE))
    assert response.status_code == 200
    body = response.json()
    assert body["data"]["status"] == "completed"
    assert body["data"]["result"]["winner_id"] == ALICE
    assert body["data"]["result"]["transferred_card_id"] == cards["bob_ranger"]

    response = await client.post(f"/api/battles/{battle_id}/resolve", headers=auth(BOB))
    assert response.status_code == 200
    assert response.json()["data"]["already_completed"] is True
    assert response.json()["message"] == "Battle already resolved"

    response = await client.get(f"/api/battles/{battle_id}/result", headers=auth(BOB))
    assert response.json()["data"]["loser_id"] == BOB

    response = await client.get(f"/api/battles/{battle_id}", headers=auth(BOB))
    view = response.json()["data"]
    assert view["winner_id"] == ALICE
    assert all(selection["card"] is not None for selection in view["selections"])

    response = await client.get("/api/cards/me", headers=auth(ALICE))
    card_ids = {card["id"] for card in response.json()["data"]}
    assert cards["bob_ranger"] in card_ids
    assert response.json()["pagination"]["total_items"] == 4

    response = await client.get(
        "/api/event-logs/me", params={"event_type": "battle_won"}, headers=auth(ALICE)
    )
    assert response.json()["pagination"]["total_items"] == 1

    response = await client.get("/api/battles/", params={"status": "completed"}, headers=auth(BOB))
    assert [battle["id"] for battle in response.json()["data"]] == [battle_id]


async def test_errors_carry_code_and_retryability(
    client: AsyncClient, cards: dict[str, int]
) -> None:
    battle_id = await _active_battle(client)
    await client.post(
        f"/api/battles/{battle_id}/selection",
        json={"card_id": cards["alice_marine"]},
        headers=auth(ALICE),
    )

    response = await client.post(
        f"/api/battles/{battle_id}/selection",
        json={"card_id": cards["alice_sorcerer"]},
        headers=auth(ALICE),
    )

    assert response.status_code == 409
    body = response.json()
    assert body["status"] == "error"
    assert body["data"] == {"code": "CARD_ALREADY_SELECTED", "kind": "conflict", "retryable": True}


async def test_battle_visibility(client: AsyncClient, players: None) -> None:
    response = await client.get("/api/battles/999", headers=auth(ALICE))
    assert response.status_code == 404
    assert response.json()["data"]["code"] == "BATTLE_NOT_FOUND"

    response = await client.post("/api/battles/", json={"opponent_id": BOB}, headers=auth(ALICE))
    battle_id = response.json()["data"]["id"]

    response = await client.get(f"/api/battles/{battle_id}", headers=auth(CAROL))
    assert response.status_code == 403
    assert response.json()["data"] == {
        "code": "PLAYER_NOT_IN_BATTLE",
        "kind": "validation",
        "retryable": False,
    }


async def test_challenge_lifecycle_errors(client: AsyncClient, players: None) -> None:
    response = await client.post("/api/battles/", json={"opponent_id": ALICE}, headers=auth(ALICE))
    assert response.status_code == 400
    assert response.json()["data"]["code"] == "INVALID_CHALLENGE"

    response = await client.post("/api/battles/", json={}, headers=auth(ALICE))
    assert response.status_code == 422

    response = await client.post(
        "/api/battles/", json={"challenged_player_id": BOB}, headers=auth(ALICE)
    )
    battle_id = response.json()["data"]["id"]

    response = await client.post(f"/api/battles/{battle_id}/cancel", headers=auth(ALICE))
    assert response.json()["data"]["status"] == "cancelled"

    response = await client.post(
        f"/api/battles/{battle_id}/respond", json={"accepted": True}, headers=auth(BOB)
    )
    assert response.status_code == 409
    assert response.json()["data"]["code"] == "INVALID_BATTLE_STATUS"


async def test_battle_rows_leave_out_the_resolution_cache(
    client: AsyncClient, cards: dict[str, int]
) -> None:
    battle_id = await _active_battle(client)
    for player_id, card in ((ALICE, "alice_marine"), (BOB, "bob_ranger")):
        await client.post(
            f"/api/battles/{battle_id}/selection",
            json={"card_id": cards[card]},
            headers=auth(player_id),
        )
    await client.post(f"/api/battles/{battle_id}/resolve", headers=auth(ALICE))

    response = await client.get("/api/battles/", headers=auth(ALICE))

    battle = response.json()["data"][0]
    assert battle["id"] == battle_id
    assert battle["status"] == "completed"
    assert battle["winner_id"] == ALICE
    assert "resolution" not in battle


async def test_store_outage_is_retryable(
    client: AsyncClient, players: None, monkeypatch: pytest.MonkeyPatch
) -> None:
    def store_down(*_args: Any, **_kwargs: Any) -> Any:
        raise OperationalError("SELECT battle_instances", {}, Exception("connection refused"))

    monkeypatch.setattr(BattleStore, "get_battle", store_down)
    response = await client.get("/api/battles/1", headers=auth(ALICE))

    assert response.status_code == 503
    assert response.json()["status"] == "error"
    assert response.json()["data"] == {
        "code": "STORE_UNAVAILABLE",
        "kind": "transient",
        "retryable": True,
    }

import pytest
from httpx import AsyncClient

from tests.helpers import create_list_group, create_title, signup

pytestmark = pytest.mark.anyio


async def _listed_titles(client: AsyncClient, *names: str) -> dict:
    group_id = await create_list_group(client)
    ids = {}
    for name in names:
        ids[name] = await create_title(client, name)
        await client.post(
            f"/api/titles/{ids[name]}/add-to-list",
            json={"list_group_id": group_id, "list_type": "ALREADY_WATCHED"},
        )
    return ids


async def test_rate_update_and_delete(client: AsyncClient):
    await signup(client)
    ids = await _listed_titles(client, "Heat")

    created = await client.put(f"/api/ratings/titles/{ids['Heat']}", json={"stars": 4, "review": " Great. "})
    assert created.status_code == 200
    assert created.json()["created"] is True
    assert created.json()["rating"]["review"] == "Great."

    updated = await client.put(f"/api/ratings/titles/{ids['Heat']}", json={"stars": 5})
    assert updated.json()["created"] is False
    assert updated.json()["rating"]["stars"] == 5
    assert updated.json()["rating"]["id"] == created.json()["rating"]["id"]

    fetched = await client.get(f"/api/ratings/titles/{ids['Heat']}")
    assert fetched.json()["rating"]["stars"] == 5

    removed = await client.delete(f"/api/ratings/titles/{ids['Heat']}")
    assert removed.json()["removed"] is True
    assert (await client.get(f"/api/ratings/titles/{ids['Heat']}")).json()["rating"] is None


async def test_stars_must_be_one_to_five(client: AsyncClient):
    await signup(client)
    ids = await _listed_titles(client, "Heat")
    assert (await client.put(f"/api/ratings/titles/{ids['Heat']}", json={"stars": 0})).status_code == 422
    assert (await client.put(f"/api/ratings/titles/{ids['Heat']}", json={"stars": 6})).status_code == 422
    assert (await client.get("/api/ratings/by-stars/9")).status_code == 400


async def test_rating_requires_title_in_own_lists(client: AsyncClient, other_client: AsyncClient):
    await signup(client)
    unlisted = await create_title(client, "Unlisted")
    assert (await client.put(f"/api/ratings/titles/{unlisted}", json={"stars": 3})).status_code == 404

    ids = await _listed_titles(client, "Heat")
    await signup(other_client, email="someone@example.com")
    assert (await other_client.put(f"/api/ratings/titles/{ids['Heat']}", json={"stars": 1})).status_code == 404
    assert (await other_client.get(f"/api/ratings/titles/{ids['Heat']}")).status_code == 404


async def test_rating_listings_and_stats(client: AsyncClient):
    await signup(client)
    ids = await _listed_titles(client, "Alien", "Brazil", "Casablanca", "Unrated")
    await client.put(f"/api/ratings/titles/{ids['Alien']}", json={"stars": 3})
    await client.put(f"/api/ratings/titles/{ids['Brazil']}", json={"stars": 5})
    await client.put(f"/api/ratings/titles/{ids['Casablanca']}", json={"stars": 4})

    mine = (await client.get("/api/ratings/my-ratings")).json()["results"]
    assert [r["title"]["name"] for r in mine] == ["Casablanca", "Brazil", "Alien"]

    top = (await client.get("/api/ratings/top-rated", params={"limit": 2})).json()["results"]
    assert [r["title"]["name"] for r in top] == ["Brazil", "Casablanca"]

    recent = (await client.get("/api/ratings/recent", params={"limit": 1})).json()["results"]
    assert [r["title"]["name"] for r in recent] == ["Casablanca"]

    fours = (await client.get("/api/ratings/by-stars/4")).json()["results"]
    assert [r["title"]["name"] for r in fours] == ["Casablanca"]

    stats = (await client.get("/api/ratings/stats")).json()
    assert stats["total_rated"] == 3
    assert stats["average_rating"] == 4.0
    assert stats["by_stars"] == {"1": 0, "2": 0, "3": 1, "4": 1, "5": 1}


async def test_stats_with_no_ratings(client: AsyncClient):
    await signup(client)
    stats = (await client.get("/api/ratings/stats")).json()
    assert stats["total_rated"] == 0
    assert stats["average_rating"] is None

from httpx import AsyncClient
from sqlalchemy import select

from watchtracker.models import ListMembership, ListType, Title


async def signup(client: AsyncClient, email: str = "viewer@example.com", password: str = "correct-horse-battery") -> dict:
    """Create an account and arm the client with its CSRF header."""
    resp = await client.post(
        "/api/auth/signup",
        json={"email": email, "password": password, "display_name": "Viewer"},
    )
    assert resp.status_code == 201, resp.text
    client.headers["X-CSRF-Token"] = client.cookies["csrf_token"]
    return resp.json()["user"]


async def genre_id(client: AsyncClient, name: str = "Drama") -> str:
    resp = await client.get("/api/genres")
    return next(g["id"] for g in resp.json()["results"] if g["name"] == name)


async def create_list_group(client: AsyncClient, name: str = "Drama") -> str:
    resp = await client.post("/api/lists", json={"genre_id": await genre_id(client, name)})
    assert resp.status_code == 201, resp.text
    return resp.json()["list_group"]["id"]


async def create_title(client: AsyncClient, name: str, tmdb_id: str | None = None, type_: str = "MOVIE") -> str:
    resp = await client.post("/api/titles", json={"type": type_, "name": name, "tmdb_id": tmdb_id})
    assert resp.status_code == 201, resp.text
    return resp.json()["title"]["id"]


async def snapshot(db, list_group_id, list_type: ListType) -> list[tuple[str, int]]:
    """(title name, position) pairs of one list, in position order."""
    rows = (
        await db.execute(
            select(Title.name, ListMembership.position)
            .join(ListMembership, ListMembership.title_id == Title.id)
            .where(
                ListMembership.list_group_id == list_group_id,
                ListMembership.list_type == list_type.value,
            )
            .order_by(ListMembership.position.asc(), Title.name.asc())
        )
    ).all()
    return [(name, position) for name, position in rows]

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine

from backend.main import create_app

pytestmark = pytest.mark.anyio


async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["database"] == "connected"
    assert body["environment"] == "development"


async def test_health_database_down(settings, tmp_path):
    # a directory cannot be opened as a database file
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}")
    app = create_app(settings=settings, engine=engine)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        resp = await ac.get("/health")
    await engine.dispose()

    assert resp.status_code == 503
    body = resp.json()
    assert body["status"] == "unhealthy"
    assert body["error"] == "Database connection failed"


async def test_api_index(client):
    body = (await client.get("/api")).json()
    assert body["name"] == "HappyRepair API"
    assert "services" in body["endpoints"]


async def test_unknown_route(client):
    resp = await client.get("/api/nothing-here")
    assert resp.status_code == 404
    body = resp.json()
    assert body["status"] == "error"
    assert body["error_code"] == "NOT_FOUND"
    assert body["message"] == "Route GET /api/nothing-here not found"
    assert body["path"] == "/api/nothing-here"
    assert "timestamp" in body


@pytest.mark.parametrize(
    "method,url,message",
    [
        ("post", "/api/auth/register", "Registration endpoint - coming soon!"),
        ("post", "/api/auth/login", "Login endpoint - coming soon!"),
        ("post", "/api/bookings", "Create booking endpoint - coming soon!"),
        ("get", "/api/customers/profile", "Customer profile endpoint - coming soon!"),
    ],
)
async def test_placeholder_endpoints(client, method, url, message):
    kwargs = {"json": {"phone": "+13105550100", "userType": "customer"}} if method == "post" else {}
    resp = await getattr(client, method)(url, **kwargs)
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "success"
    assert body["message"] == message


async def test_login_echoes_identity(client):
    resp = await client.post("/api/auth/login", json={"phone": "+13105550100", "userType": "mechanic"})
    assert resp.json()["data"] == {"phone": "+13105550100", "userType": "mechanic"}

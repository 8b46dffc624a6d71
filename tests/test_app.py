import httpx

from app.core.config import Settings, get_settings, parse_size_limit
from app.db.client import get_db
from app.main import create_app


def test_parse_size_limit():
    assert parse_size_limit("512kb") == 512 * 1024
    assert parse_size_limit("10MB") == 10 * 1024 ** 2
    assert parse_size_limit("1gb") == 1024 ** 3
    assert parse_size_limit("5") == 5 * 1024 ** 2
    assert parse_size_limit("lots", default=7) == 7
    assert parse_size_limit(None, default=7) == 7


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("PORT", "9000")
    monkeypatch.setenv("JSON_LIMIT", "1kb")
    monkeypatch.setenv("CORS_ORIGINS", "http://a.test, http://b.test")
    monkeypatch.setenv("EXTERNAL_API_BASE_URL", "http://negotiation.test/")
    monkeypatch.setenv("USE_EMULATOR", "true")
    monkeypatch.setenv("EMULATOR_DB_HOST", "mongo:27017")

    settings = Settings.from_env()

    assert settings.port == 9000
    assert settings.json_limit == 1024
    assert settings.cors_origins == ["http://a.test", "http://b.test"]
    assert settings.external_api_base_url == "http://negotiation.test"
    assert settings.database_uri == "mongodb://mongo:27017"


def test_get_settings_is_cached():
    get_settings.cache_clear()
    assert get_settings() is get_settings()


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "OK"
    assert body["timestamp"]


async def test_unknown_route_uses_error_body(client):
    response = await client.get("/api/nothing-here")

    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Not Found"}


async def test_oversized_json_body_is_rejected(db):
    app = create_app(Settings(json_limit=10))
    app.dependency_overrides[get_db] = lambda: db

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post("/api/requests", json={"requestName": "A request that is too long"})

    assert response.status_code == 413
    assert response.json() == {"success": False, "error": "Request body too large"}

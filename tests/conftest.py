# tests/conftest.py
import httpx
import mongomock
import pytest
from fastapi.testclient import TestClient

from store_api.catalog import CatalogClient
from store_api.config import Settings
from store_api.database import MongoGateway, SQLGateway
from store_api.main import create_app

GAMES = [
    {"id": 452, "title": "Call Of Duty: Warzone", "genre": "Shooter", "platform": "PC (Windows)"},
    {"id": 540, "title": "Overwatch 2", "genre": "Shooter", "platform": "PC (Windows)"},
]


def catalog_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/api/games":
        return httpx.Response(200, json=GAMES)
    if request.url.path == "/api/game":
        game_id = request.url.params.get("id")
        if game_id == "boom":
            return httpx.Response(503, text="upstream down")
        for g in GAMES:
            if str(g["id"]) == game_id:
                return httpx.Response(200, json=g)
        return httpx.Response(200, json={"status": 0, "status_message": "No game found at that id"})
    return httpx.Response(404)


def make_gateway(backend: str):
    if backend == "mongo":
        return MongoGateway(db_name="store_test", client=mongomock.MongoClient())
    return SQLGateway("sqlite://")


def make_client(backend: str = "sql", broadcast: bool = True, handler=catalog_handler) -> TestClient:
    settings = Settings(store_backend=backend, broadcast_enabled=broadcast)
    catalog = CatalogClient("https://catalog.test/api", transport=httpx.MockTransport(handler))
    app = create_app(settings=settings, gateway=make_gateway(backend), catalog=catalog)
    return TestClient(app)


@pytest.fixture(params=["sql", "mongo"])
def client(request):
    with make_client(request.param) as c:
        yield c


@pytest.fixture
def sql_client():
    with make_client("sql") as c:
        yield c


@pytest.fixture
def client_factory():
    return make_client

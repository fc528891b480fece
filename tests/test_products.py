# tests/test_products.py
import pytest
from sqlalchemy.exc import OperationalError
from fastapi.testclient import TestClient

from store_api.config import Settings
from store_api.database import SQLGateway
from store_api.main import create_app


def _fields(resp):
    return [e["field"] for e in resp.json()["errors"]]


def test_root_greeting(client):
    r = client.get("/")
    assert r.status_code == 200
    assert r.text == "Hello World!"


def test_widget_lifecycle(client):
    r = client.post("/products", json={"name": "Widget", "about": "basic", "price": 9.99})
    assert r.status_code == 201
    created = r.json()
    assert created["id"]
    assert created["name"] == "Widget"
    assert created["about"] == "basic"
    assert created["price"] == 9.99

    r2 = client.get(f"/products/{created['id']}")
    assert r2.status_code == 200
    assert r2.json() == created

    r3 = client.delete(f"/products/{created['id']}")
    assert r3.status_code == 200
    assert r3.json()["id"] == created["id"]

    assert client.get(f"/products/{created['id']}").status_code == 404


def test_second_delete_is_not_found(client):
    pid = client.post("/products", json={"name": "Once", "about": "x", "price": 1}).json()["id"]
    assert client.delete(f"/products/{pid}").status_code == 200
    r = client.delete(f"/products/{pid}")
    assert r.status_code == 404
    assert r.json()["detail"] == "Product not found"


def test_unknown_product_is_404(client):
    assert client.get("/products/does-not-exist").status_code == 404
    assert client.get("/products/000000000000000000000000").status_code == 404


@pytest.mark.parametrize("price", [0, -1, -0.01])
def test_non_positive_price_rejected(client, price):
    r = client.post("/products", json={"name": "Bad", "about": "x", "price": price})
    assert r.status_code == 400
    assert "price" in _fields(r)


@pytest.mark.parametrize("missing", ["name", "about", "price"])
def test_missing_field_rejected(client, missing):
    body = {"name": "Bad", "about": "x", "price": 3}
    body.pop(missing)
    r = client.post("/products", json=body)
    assert r.status_code == 400
    assert r.json()["detail"] == "Validation failed"
    assert missing in _fields(r)


def test_wrong_type_rejected(client):
    r = client.post("/products", json={"name": 12, "about": "x", "price": 3})
    assert r.status_code == 400
    assert "name" in _fields(r)


def test_client_id_is_ignored(client):
    r = client.post("/products", json={"id": "mine", "name": "A", "about": "b", "price": 2})
    assert r.status_code == 201
    assert r.json()["id"] != "mine"


def test_put_replaces_and_patch_merges(client):
    pid = client.post("/products", json={"name": "Lamp", "about": "desk", "price": 20}).json()["id"]

    r = client.patch(f"/products/{pid}", json={"price": 25})
    assert r.status_code == 200
    assert r.json()["name"] == "Lamp"
    assert r.json()["about"] == "desk"
    assert r.json()["price"] == 25

    r = client.put(f"/products/{pid}", json={"name": "Floor lamp", "about": "tall", "price": 40})
    assert r.status_code == 200
    assert r.json()["name"] == "Floor lamp"
    assert r.json()["about"] == "tall"
    assert r.json()["price"] == 40

    # PUT needs every field
    r = client.put(f"/products/{pid}", json={"name": "Half"})
    assert r.status_code == 400

    r = client.patch(f"/products/{pid}", json={"price": -3})
    assert r.status_code == 400
    assert "price" in _fields(r)


def test_update_unknown_product_is_404(client):
    assert client.patch("/products/nope", json={"price": 1}).status_code == 404
    assert client.put("/products/nope", json={"name": "a", "about": "b", "price": 1}).status_code == 404


def test_search_filters_combine(client):
    client.post("/products", json={"name": "Widget", "about": "basic", "price": 9.99})
    client.post("/products", json={"name": "Gadget", "about": "Fancy WIDGET holder", "price": 25})
    client.post("/products", json={"name": "Thing", "about": "plain", "price": 5})

    names = lambda r: sorted(p["name"] for p in r.json())

    assert names(client.get("/products")) == ["Gadget", "Thing", "Widget"]
    assert names(client.get("/products", params={"name": "widg"})) == ["Widget"]
    assert names(client.get("/products", params={"about": "widget"})) == ["Gadget"]
    assert names(client.get("/products", params={"price": 10})) == ["Thing", "Widget"]
    assert names(client.get("/products", params={"name": "g", "price": 10})) == ["Thing", "Widget"]
    assert names(client.get("/products", params={"name": "%"})) == []


def test_search_bad_price_is_400(client):
    r = client.get("/products", params={"price": "cheap"})
    assert r.status_code == 400
    assert "price" in _fields(r)


def test_categories_are_expanded(client):
    r = client.post("/categories", json={"name": "Tools"})
    assert r.status_code == 200
    cat = r.json()

    r = client.post("/products", json={"name": "Hammer", "about": "steel", "price": 12, "categoryIds": [cat["id"], "ghost"]})
    assert r.status_code == 201
    product = r.json()
    assert product["categoryIds"] == [cat["id"], "ghost"]
    assert product["categories"] == [{"id": cat["id"], "name": "Tools"}]

    listed = client.get("/products").json()
    assert listed[0]["categories"] == [{"id": cat["id"], "name": "Tools"}]


class BrokenGateway(SQLGateway):
    def _select_all(self, resource):
        raise OperationalError("SELECT", {}, Exception("db down"))


def test_store_failure_is_generic_500():
    app = create_app(settings=Settings(broadcast_enabled=False), gateway=BrokenGateway("sqlite://"))
    with TestClient(app) as c:
        r = c.get("/products")
    assert r.status_code == 500
    assert "db down" not in r.text
    assert r.json()["detail"] == "Failed to list product"


@pytest.mark.parametrize("raw_price", ["1e999", "-1e999", "NaN", "Infinity"])
def test_non_finite_price_rejected(client, raw_price):
    body = '{"name": "Inf", "about": "x", "price": %s}' % raw_price
    r = client.post("/products", content=body, headers={"Content-Type": "application/json"})
    assert r.status_code == 400
    assert "price" in _fields(r)
    assert client.get("/products").json() == []


@pytest.mark.parametrize("price", [True, "9.99", "10", None, [5]])
def test_non_numeric_price_rejected(client, price):
    r = client.post("/products", json={"name": "Odd", "about": "x", "price": price})
    assert r.status_code == 400
    assert "price" in _fields(r)


def test_patch_price_must_be_a_finite_number(client):
    pid = client.post("/products", json={"name": "Mug", "about": "tea", "price": 4}).json()["id"]
    assert client.patch(f"/products/{pid}", json={"price": "5"}).status_code == 400
    assert client.patch(f"/products/{pid}", json={"price": False}).status_code == 400
    r = client.patch(f"/products/{pid}", content='{"price": 1e999}', headers={"Content-Type": "application/json"})
    assert r.status_code == 400
    assert client.get(f"/products/{pid}").json()["price"] == 4

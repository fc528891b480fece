# tests/test_catalog.py
import httpx


def test_list_games_relays_upstream(sql_client):
    r = sql_client.get("/f2p-games")
    assert r.status_code == 200
    assert [g["title"] for g in r.json()] == ["Call Of Duty: Warzone", "Overwatch 2"]

def test_get_game(sql_client):
    r = sql_client.get("/f2p-games/540")
    assert r.status_code == 200
    assert r.json()["title"] == "Overwatch 2"

def test_sentinel_payload_is_404(sql_client):
    r = sql_client.get("/f2p-games/99999")
    assert r.status_code == 404

def test_upstream_failure_is_500(sql_client):
    r = sql_client.get("/f2p-games/boom")
    assert r.status_code == 500
    assert r.json()["detail"] == "fetch failed"

def test_empty_payload_is_404(client_factory):
    with client_factory(handler=lambda request: httpx.Response(200, json={})) as c:
        assert c.get("/f2p-games/1").status_code == 404

def test_unreachable_catalog_is_500(client_factory):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    with client_factory(handler=refuse) as c:
        r = c.get("/f2p-games")
    assert r.status_code == 500
    assert r.json()["detail"] == "fetch failed"

"""Application wiring tests."""


def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_wallet_routes_mounted(client):
    paths = client.get("/openapi.json").json()["paths"]

    assert {
        "/api/wallets/{holder}/acquisitions",
        "/api/wallets/{holder}/disposals",
        "/api/wallets/{holder}/transactions",
        "/api/wallets/{holder}/lots",
        "/api/wallets/{holder}/realized",
        "/api/wallets/{holder}/pnl",
        "/api/wallets/{holder}/pnl/{asset_id}",
    } <= set(paths)
    assert set(paths["/api/wallets/{holder}/pnl"]) == {"get"}

import asyncio

import pytest
from fastapi.testclient import TestClient

from yieldex_staking.api import create_app
from yieldex_staking.refresher import StakingRefresher


@pytest.fixture
def app(settings, store, reader):
    return create_app(settings=settings, store=store, reader=reader)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def populated_store(app, store):
    """Store holding a snapshot for every registered token"""
    refresher: StakingRefresher = app.state.refresher
    asyncio.run(refresher.refresh_all())
    return store


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["rpc_connected"] is True


def test_list_empty_before_refresh(client):
    """No refreshes yet is an empty list, not an error"""
    response = client.get("/staking")
    assert response.status_code == 200
    assert response.json() == []


def test_list_all(client, populated_store):
    response = client.get("/staking")
    assert response.status_code == 200
    body = response.json()
    assert len(body) == 3
    assert {row["name_token"] for row in body} == {"S", "LBTC", "USDCe"}


def test_list_store_failure(client, store):
    store.broken = True
    response = client.get("/staking")
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to fetch staking data"}


def test_by_protocol(client, populated_store):
    response = client.get("/staking/protocol/SiloV2_S")
    assert response.status_code == 200
    body = response.json()
    assert len(body) == 1
    assert body[0]["id_protocol"] == "SiloV2_S"
    assert body[0]["apy"] == 5
    assert body[0]["tvl"] == 1000.0


def test_by_protocol_legacy_path(client, populated_store):
    response = client.get("/staking/SpectraV2_USDCe")
    assert response.status_code == 200
    body = response.json()
    assert len(body) == 1
    assert body[0]["stablecoin"] is True
    assert body[0]["categories"] == ["Staking", "Stablecoin"]


def test_by_protocol_no_match_is_empty(client, populated_store):
    response = client.get("/staking/protocol/Unknown_XYZ")
    assert response.status_code == 200
    assert response.json() == []


def test_by_protocol_store_failure(client, store):
    store.broken = True
    response = client.get("/staking/protocol/SiloV2_S")
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to fetch staking data"}


def test_by_address(client, registry, populated_store):
    address = registry["LBTC"].token_address
    response = client.get(f"/staking/address/{address}")
    assert response.status_code == 200
    body = response.json()
    assert body["address_token"] == address
    assert body["name_project"] == "Lombard Finance"


def test_by_address_any_case(client, registry, populated_store):
    """Lower-case addresses resolve to the stored checksum address"""
    address = registry["LBTC"].token_address
    response = client.get(f"/staking/address/{address.lower()}")
    assert response.status_code == 200
    assert response.json()["address_token"] == address


def test_by_address_not_found(client):
    response = client.get("/staking/address/0x0000000000000000000000000000000000000001")
    assert response.status_code == 404
    assert response.json() == {"error": "Staking data not found"}


def test_by_address_store_failure(client, store):
    store.broken = True
    response = client.get("/staking/address/0x0000000000000000000000000000000000000001")
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to fetch staking data"}


def test_update(client, store):
    response = client.post("/staking/update")
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "All staking data updated successfully"
    assert body["attempted"] == 3
    assert body["succeeded"] == 3
    assert len(store.rows) == 3


def test_update_reports_success_with_partial_failure(client, registry, reader, store):
    """A failing contract is invisible to the caller of the update endpoint"""
    reader.fail_for(registry["S"].staking_address)

    response = client.post("/staking/update")

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "All staking data updated successfully"
    assert body["succeeded"] == 2
    assert registry["S"].token_address not in store.rows
    assert registry["LBTC"].token_address in store.rows


def test_update_fan_out_failure(client, app, monkeypatch):
    async def broken_refresh_all():
        raise RuntimeError("gather failed")

    monkeypatch.setattr(app.state.refresher, "refresh_all", broken_refresh_all)

    response = client.post("/staking/update")
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to update staking data"}

"""Tests for the HTTP trigger surface."""

import pytest
from fastapi.testclient import TestClient

from conftest import STATE_ADDRESS, FakeLedgerRpc, SleepRecorder, make_snapshot
from reserve_recon.api import create_app
from reserve_recon.chain.instructions import InstructionKind
from reserve_recon.service import ReserveService


@pytest.fixture
def rpc() -> FakeLedgerRpc:
    return FakeLedgerRpc(make_snapshot(supply=2, reserves=2, price=1000))


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def service(config, store, rpc, sleeper) -> ReserveService:
    svc = ReserveService(config, store=store, rpc=rpc, state_address=STATE_ADDRESS, sleep=sleeper)
    svc.ingest("B-1", ["GB-1", "GB-2", "GB-3"])
    return svc


@pytest.fixture
def client(service: ReserveService) -> TestClient:
    return TestClient(create_app(service))


class TestReconcileEndpoint:
    def test_describe(self, client: TestClient) -> None:
        resp = client.get("/api/reconcile")
        assert resp.status_code == 200
        body = resp.json()
        assert body["method"] == "POST"
        assert body["state_address"] == STATE_ADDRESS

    def test_manual_trigger_without_body(self, client: TestClient, rpc: FakeLedgerRpc) -> None:
        resp = client.post("/api/reconcile")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "verified"
        assert body["trigger_source"] == "manual"
        assert body["leaf_count"] == 3
        assert rpc.state.total_supply == 3

    def test_webhook_trigger(self, client: TestClient, sleeper: SleepRecorder) -> None:
        resp = client.post("/api/reconcile", json={"type": "INSERT", "table": "serials"})
        assert resp.status_code == 200
        assert resp.json()["trigger_source"] == "webhook"
        assert sleeper.calls == [5.0]

    def test_refusal_is_conflict(self, client: TestClient, rpc: FakeLedgerRpc) -> None:
        rpc.account = rpc.layout.encode(make_snapshot(supply=5, reserves=5))
        resp = client.post("/api/reconcile", json={})
        assert resp.status_code == 409
        body = resp.json()
        assert body["status"] == "refused"
        assert body["error_detail"]["proposed"] == 3
        assert body["error_detail"]["supply"] == 5
        assert rpc.submitted == []

    def test_no_baseline_is_unavailable(self, client: TestClient, rpc: FakeLedgerRpc) -> None:
        rpc.account = None
        resp = client.post("/api/reconcile", json={})
        assert resp.status_code == 503
        assert resp.json()["error_detail"]["reason"] == "no_baseline"

    def test_partial_is_multi_status(self, client: TestClient, rpc: FakeLedgerRpc) -> None:
        rpc.revert_on.add(InstructionKind.RECORD_PROOF)
        resp = client.post("/api/reconcile", json={})
        assert resp.status_code == 207
        assert resp.json()["status"] == "partial"

    def test_malformed_trigger(self, client: TestClient) -> None:
        resp = client.post("/api/reconcile", json={"allow_insolvent_update": "yes"})
        assert resp.status_code == 400

    def test_timeout_query(self, client: TestClient, sleeper: SleepRecorder) -> None:
        client.post("/api/reconcile?timeout=1.5", json={"type": "INSERT"})
        assert sleeper.calls[0] <= 1.5


class TestPriceSyncEndpoint:
    def test_publish_units(self, client: TestClient, rpc: FakeLedgerRpc) -> None:
        resp = client.post("/api/price-sync", json={"price_units": 1100})
        assert resp.status_code == 200
        assert resp.json()["status"] == "published"
        assert rpc.state.price_units == 1100

    def test_from_usd_prices(self, client: TestClient, rpc: FakeLedgerRpc) -> None:
        rpc.account = rpc.layout.encode(make_snapshot(price=45_000_000))
        resp = client.post("/api/price-sync", json={"asset_usd": "9.18", "native_usd": "200"})
        assert resp.status_code == 200
        assert resp.json()["new_price"] == 45_900_000

    def test_step_exceeded(self, client: TestClient) -> None:
        resp = client.post("/api/price-sync", json={"price_units": 2000})
        assert resp.status_code == 409
        assert resp.json()["error_kind"] == "price_step_exceeded"

    def test_missing_prices(self, client: TestClient) -> None:
        resp = client.post("/api/price-sync", json={"asset_usd": "9.18"})
        assert resp.status_code == 400

    def test_negative_price_rejected(self, client: TestClient) -> None:
        resp = client.post("/api/price-sync", json={"asset_usd": "-1", "native_usd": "200"})
        assert resp.status_code == 422


class TestProtocolStatusEndpoint:
    def test_status(self, client: TestClient) -> None:
        client.post("/api/reconcile", json={})
        resp = client.get("/api/protocol-status?history=true")
        assert resp.status_code == 200
        assert resp.headers["cache-control"] == "no-store, max-age=0"
        data = resp.json()["data"]
        assert data["solvency"]["status"] == "SOLVENT"
        assert len(data["off_chain"]["audit_history"]) == 1

    def test_status_unavailable(self, client: TestClient, rpc: FakeLedgerRpc) -> None:
        rpc.account = None
        resp = client.get("/api/protocol-status")
        assert resp.status_code == 503
        assert resp.json()["success"] is False

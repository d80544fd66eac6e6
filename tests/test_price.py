"""Tests for price computation and the price drift reconciler."""

from decimal import Decimal

import pytest

from conftest import STATE_ADDRESS, FakeLedgerRpc, make_snapshot
from reserve_recon.chain.instructions import InstructionKind
from reserve_recon.config import ReconcilerConfig
from reserve_recon.engine.price import (
    PriceDriftReconciler,
    compute_price_units,
    relative_drift,
)
from reserve_recon.models.report import PriceSyncStatus


def _reconciler(rpc, config=None) -> PriceDriftReconciler:
    return PriceDriftReconciler(config or ReconcilerConfig(), rpc, STATE_ADDRESS)


class TestComputePrice:
    def test_asset_over_native(self) -> None:
        assert compute_price_units(Decimal("9.18"), Decimal("200")) == 45_900_000

    def test_rounds_down(self) -> None:
        assert compute_price_units(Decimal("1"), Decimal("3")) == 333_333_333

    def test_rejects_non_positive(self) -> None:
        with pytest.raises(ValueError):
            compute_price_units(Decimal("0"), Decimal("200"))
        with pytest.raises(ValueError):
            compute_price_units(Decimal("9.18"), Decimal("-1"))

    def test_relative_drift(self) -> None:
        assert relative_drift(1000, 1050) == Decimal("0.05")
        assert relative_drift(1000, 950) == Decimal("0.05")


class TestPriceDriftReconciler:
    def test_small_drift_skipped(self) -> None:
        rpc = FakeLedgerRpc(make_snapshot(price=1000))
        report = _reconciler(rpc).reconcile(1005)

        assert report.status == PriceSyncStatus.SKIPPED
        assert report.success
        assert report.old_price == 1000
        assert rpc.submitted == []

    def test_drift_published(self) -> None:
        rpc = FakeLedgerRpc(make_snapshot(price=1000))
        report = _reconciler(rpc).reconcile(1050)

        assert report.status == PriceSyncStatus.PUBLISHED
        assert report.tx_id is not None
        assert report.drift == "0.05"
        assert rpc.kinds == [InstructionKind.SET_PRICE]
        assert rpc.state.price_units == 1050

    def test_threshold_is_inclusive(self) -> None:
        rpc = FakeLedgerRpc(make_snapshot(price=1000))
        report = _reconciler(rpc).reconcile(1010)
        assert report.status == PriceSyncStatus.PUBLISHED

    def test_large_step_refused_locally(self) -> None:
        rpc = FakeLedgerRpc(make_snapshot(price=1000))
        report = _reconciler(rpc).reconcile(1300)

        assert report.status == PriceSyncStatus.REFUSED
        assert report.error_kind == "price_step_exceeded"
        assert rpc.submitted == []

    def test_first_price_published_without_drift(self) -> None:
        rpc = FakeLedgerRpc(make_snapshot(price=0))
        report = _reconciler(rpc).reconcile(45_900_000)

        assert report.status == PriceSyncStatus.PUBLISHED
        assert report.drift is None
        assert rpc.state.price_units == 45_900_000

    def test_invalid_candidate(self) -> None:
        rpc = FakeLedgerRpc(make_snapshot(price=1000))
        report = _reconciler(rpc).reconcile(0)
        assert report.status == PriceSyncStatus.REFUSED
        assert report.error_kind == "invalid_price"
        assert rpc.reads == 0

    def test_read_failure(self) -> None:
        report = _reconciler(FakeLedgerRpc()).reconcile(1000)
        assert report.status == PriceSyncStatus.FAILED
        assert report.error_kind == "account_not_found"

    def test_transaction_failure(self) -> None:
        rpc = FakeLedgerRpc(make_snapshot(price=1000))
        rpc.revert_on.add(InstructionKind.SET_PRICE)
        report = _reconciler(rpc).reconcile(1100)

        assert report.status == PriceSyncStatus.FAILED
        assert report.error_kind == "transaction_error"
        assert report.tx_id is not None
        assert rpc.state.price_units == 1000

    def test_custom_threshold(self) -> None:
        config = ReconcilerConfig(price_drift_threshold=Decimal("0.10"))
        rpc = FakeLedgerRpc(make_snapshot(price=1000))
        assert _reconciler(rpc, config).reconcile(1050).status == PriceSyncStatus.SKIPPED

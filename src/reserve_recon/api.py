"""HTTP trigger surface.

Routes:
    GET  /api/reconcile         endpoint description
    POST /api/reconcile         webhook or manual trigger; returns the run report
    POST /api/price-sync        publish the computed price if it drifted
    GET  /api/protocol-status   on-chain state, solvency and audit trail

Authentication (webhook secret, operator signature) is enforced in front
of this app and is not handled here. Handlers are plain ``def`` so
FastAPI runs the blocking pipeline in its worker threads; overlapping
triggers become independent concurrent runs.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from reserve_recon.errors import TriggerError
from reserve_recon.models.report import PriceSyncStatus, RunStatus
from reserve_recon.service import ReserveService


class PriceSyncRequest(BaseModel):
    asset_usd: Optional[Decimal] = Field(default=None, gt=0)
    native_usd: Optional[Decimal] = Field(default=None, gt=0)
    price_units: Optional[int] = Field(default=None, gt=0)


_RUN_STATUS_CODES = {
    RunStatus.VERIFIED: 200,
    RunStatus.NOTHING_TO_VERIFY: 200,
    RunStatus.REFUSED: 409,
    RunStatus.PARTIAL: 207,
    RunStatus.FAILED: 500,
}

_PRICE_STATUS_CODES = {
    PriceSyncStatus.PUBLISHED: 200,
    PriceSyncStatus.SKIPPED: 200,
    PriceSyncStatus.REFUSED: 409,
    PriceSyncStatus.FAILED: 502,
}


def create_app(service: ReserveService) -> FastAPI:
    app = FastAPI(title="Reserve Reconciler")

    @app.get("/api/reconcile")
    def describe() -> Dict[str, Any]:
        return {
            "status": "ok",
            "endpoint": "/api/reconcile",
            "method": "POST",
            "description": (
                "Reserve verification pipeline. POST a webhook payload "
                '({"type": "INSERT", "table": ...}) or a manual trigger payload.'
            ),
            "state_address": service.state_address,
            "auto_mint_enabled": service.config.auto_mint_enabled,
        }

    @app.post("/api/reconcile")
    def reconcile(
        payload: Optional[Dict[str, Any]] = Body(default=None),
        timeout: Optional[float] = None,
    ) -> JSONResponse:
        try:
            report = service.handle_trigger(payload, timeout_seconds=timeout)
        except TriggerError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        status_code = _RUN_STATUS_CODES[report.status]
        if report.status == RunStatus.REFUSED and report.error_detail.get("reason") == "no_baseline":
            status_code = 503
        return JSONResponse(content=report.to_dict(), status_code=status_code)

    @app.post("/api/price-sync")
    def price_sync(req: PriceSyncRequest) -> JSONResponse:
        if req.price_units is not None:
            report = service.sync_price_units(req.price_units)
        elif req.asset_usd is not None and req.native_usd is not None:
            report = service.sync_price(req.asset_usd, req.native_usd)
        else:
            raise HTTPException(
                status_code=400,
                detail="Provide price_units, or both asset_usd and native_usd",
            )
        return JSONResponse(content=report.to_dict(), status_code=_PRICE_STATUS_CODES[report.status])

    @app.get("/api/protocol-status")
    def protocol_status(history: bool = False) -> JSONResponse:
        result = service.status(history=10 if history else 0)
        if not result.data:
            return JSONResponse(
                content={"success": False, "errors": result.errors, "data": None},
                status_code=503,
            )
        return JSONResponse(
            content={"success": result.success, "errors": result.errors, "data": result.data},
            headers={"Cache-Control": "no-store, max-age=0"},
        )

    return app

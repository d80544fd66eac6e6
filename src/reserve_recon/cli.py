"""Reserve reconciler CLI: operator commands and the trigger server.

Usage:
    reserve-recon verify
    reserve-recon verify --allow-insolvent --no-mint
    reserve-recon sync-price --asset-usd 9.18 --native-usd 200
    reserve-recon status --history 5
    reserve-recon ingest --batch B-001 SN-1 SN-2 SN-3
    reserve-recon prove-serial SN-2
    reserve-recon serve --host 0.0.0.0 --port 8000

Settings come from ``--env-file`` (default ``.env``) overlaid with
RECON_* environment variables.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path

from reserve_recon.config import ReconcilerConfig
from reserve_recon.errors import ReconciliationError
from reserve_recon.models.trigger import ReconciliationRequest, TriggerSource
from reserve_recon.service import ReserveService, ServiceResult


DEFAULT_ENV_FILE = Path(".env")


def _make_service(args: argparse.Namespace) -> ReserveService:
    """Create a ReserveService from the env file and environment."""
    config = ReconcilerConfig.from_env(args.env_file)
    config.store_path.parent.mkdir(parents=True, exist_ok=True)
    return ReserveService(config)


def _print_result(result: ServiceResult) -> int:
    if result.data:
        print(json.dumps(result.data, indent=2))
    if result.errors:
        print(f"Failed: {'; '.join(result.errors)}", file=sys.stderr)
    return 0 if result.success else 1


def cmd_verify(args: argparse.Namespace) -> int:
    service = _make_service(args)
    request = ReconciliationRequest(
        source=TriggerSource.MANUAL if args.manual else TriggerSource.SCHEDULED,
        requested_by="cli",
        allow_insolvent_update=True if args.allow_insolvent else None,
        auto_mint_enabled=False if args.no_mint else None,
        timeout_seconds=args.timeout,
    )
    report = service.reconcile(request)
    print(json.dumps(report.to_dict(), indent=2))
    return 0 if report.success else 1


def cmd_sync_price(args: argparse.Namespace) -> int:
    try:
        asset_usd = Decimal(args.asset_usd)
        native_usd = Decimal(args.native_usd)
    except InvalidOperation:
        print("Prices must be decimal numbers", file=sys.stderr)
        return 2
    if asset_usd <= 0 or native_usd <= 0:
        print("Prices must be positive", file=sys.stderr)
        return 2
    service = _make_service(args)
    report = service.sync_price(asset_usd, native_usd)
    print(json.dumps(report.to_dict(), indent=2))
    return 0 if report.success else 1


def cmd_status(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _print_result(service.status(history=args.history))


def cmd_ingest(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _print_result(service.ingest(args.batch, list(args.serials)))


def cmd_prove_serial(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _print_result(service.prove_serial(args.serial))


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from reserve_recon.api import create_app

    service = _make_service(args)
    uvicorn.run(create_app(service), host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="reserve-recon",
        description="Reserve verification and solvency reconciliation",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=DEFAULT_ENV_FILE,
        help="Path to .env file (default: .env)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )
    sub = parser.add_subparsers(dest="command")

    # verify
    p_verify = sub.add_parser("verify", help="Run one reserve reconciliation")
    p_verify.add_argument("--manual", action="store_true", help="Record the run as operator-initiated")
    p_verify.add_argument(
        "--allow-insolvent", action="store_true",
        help="Bypass the invariant guard for this run (emergency only)",
    )
    p_verify.add_argument("--no-mint", action="store_true", help="Skip the mint step")
    p_verify.add_argument("--timeout", type=float, help="Run timeout in seconds")

    # sync-price
    p_price = sub.add_parser("sync-price", help="Publish the price if it drifted")
    p_price.add_argument("--asset-usd", required=True, help="Asset price in USD (Decimal)")
    p_price.add_argument("--native-usd", required=True, help="Native token price in USD (Decimal)")

    # status
    p_status = sub.add_parser("status", help="Show protocol state and audit trail")
    p_status.add_argument("--history", type=int, default=0, help="Audit entries to include")

    # ingest
    p_ingest = sub.add_parser("ingest", help="Add serials to the off-chain ledger")
    p_ingest.add_argument("--batch", required=True, help="Batch ID")
    p_ingest.add_argument("serials", nargs="+", help="Serial numbers")

    # prove-serial
    p_prove = sub.add_parser("prove-serial", help="Inclusion proof for one serial")
    p_prove.add_argument("serial", help="Serial number")

    # serve
    p_serve = sub.add_parser("serve", help="Run the HTTP trigger server")
    p_serve.add_argument("--host", default="127.0.0.1", help="Bind address")
    p_serve.add_argument("--port", type=int, default=8000, help="Bind port")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    commands = {
        "verify": cmd_verify,
        "sync-price": cmd_sync_price,
        "status": cmd_status,
        "ingest": cmd_ingest,
        "prove-serial": cmd_prove_serial,
        "serve": cmd_serve,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    try:
        return handler(args)
    except ReconciliationError as exc:
        print(f"{exc.kind}: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())

"""`subway-tracker` command-line client."""

from __future__ import annotations

import argparse
import asyncio
import getpass
import json
import os
from collections.abc import Sequence
from pathlib import Path

from subway_client.catalog import StationCatalog
from subway_client.client import TrackerClient
from subway_client.controller import AuthState, TrackerController

DEFAULT_BASE_URL = "http://localhost:3001"
DEFAULT_SESSION_FILE = Path.home() / ".subway-tracker-session"


def _load_token(path: Path) -> str | None:
    try:
        token = path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        return None
    return token or None


def _store_token(path: Path, token: str | None) -> None:
    """Persist the session token, or remove the file once the session is gone."""
    if token is None:
        path.unlink(missing_ok=True)
        return
    path.write_text(token, encoding="utf-8")
    path.chmod(0o600)


def _print(payload: object) -> None:
    print(json.dumps(payload, indent=2))


async def _run(args: argparse.Namespace) -> int:
    session_file = Path(args.session_file)
    catalog = StationCatalog.load(args.catalog)
    async with TrackerClient(args.base_url) as client:
        token = _load_token(session_file)
        if token is not None:
            client.restore_session(token)
        controller = TrackerController(client, catalog)
        try:
            return await _dispatch(args, controller)
        finally:
            _store_token(session_file, client.session_token)


async def _dispatch(args: argparse.Namespace, controller: TrackerController) -> int:
    if args.command in {"login", "register"}:
        credential = args.pin or getpass.getpass("PIN: ")
        ok = await controller.authenticate(
            args.handle, credential, register=args.command == "register"
        )
        if not ok:
            _print({"error": controller.error})
            return 1
        _print({"user": controller.user, "visited": len(controller.visited)})
        return 0

    if args.command == "logout":
        await controller.logout()
        _print({"success": controller.error is None})
        return 0 if controller.error is None else 1

    await controller.start()
    if controller.state is not AuthState.AUTHENTICATED:
        _print({"error": controller.error or "Not authenticated."})
        return 1

    if args.line:
        try:
            controller.set_line_filter(args.line)
        except ValueError as exc:
            _print({"error": str(exc)})
            return 2

    if args.command == "status":
        stats = controller.stats()
        _print({"user": controller.user, "visited": stats.visited, "total": stats.total})
    elif args.command == "list":
        controller.set_search(args.search or "")
        rows = controller.list_rows()
        for row in rows:
            mark = "x" if row.checked else " "
            print(f"[{mark}] {row.station_id:<5} {row.text}")
    elif args.command in {"mark", "unmark"}:
        if controller.is_visited(args.station_id) == (args.command == "mark"):
            _print({"station_id": args.station_id, "changed": []})
            return 0
        result = await controller.toggle_station(args.station_id)
        _print({"station_id": args.station_id, "changed": result.applied, "failed": result.failed})
        return 1 if result.failed else 0
    elif args.command == "clear":
        ok = await controller.clear_all()
        _print({"success": ok})
        return 0 if ok else 1
    elif args.command == "leaderboard":
        rows = await controller.leaderboard_view()
        for row in rows:
            marker = "*" if row.is_current_user else " "
            progress = f"{row.count}/{row.total} {row.percentage}%"
            print(f"{marker}#{row.rank:<3} {row.handle:<20} {progress}")
    elif args.command == "export":
        document = controller.geojson()
        if args.output:
            Path(args.output).write_text(json.dumps(document), encoding="utf-8")
        else:
            _print(document)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="subway-tracker")
    parser.add_argument(
        "--base-url", default=os.environ.get("SUBWAY_TRACKER_URL", DEFAULT_BASE_URL)
    )
    parser.add_argument(
        "--session-file",
        default=os.environ.get("SUBWAY_TRACKER_SESSION_FILE", str(DEFAULT_SESSION_FILE)),
    )
    parser.add_argument(
        "--catalog",
        default=os.environ.get("SUBWAY_TRACKER_CATALOG"),
        help=(
            "Station catalog JSON. The bundled file is a sample of major stations and "
            "complexes; point this at a full system catalog for real totals."
        ),
    )
    parser.add_argument("--line", default=None, help="Restrict to one line.")
    subcommands = parser.add_subparsers(dest="command", required=True)

    for name in ("login", "register"):
        auth_parser = subcommands.add_parser(name)
        auth_parser.add_argument("handle")
        auth_parser.add_argument("--pin", default=None)
    subcommands.add_parser("logout")
    subcommands.add_parser("status")
    list_parser = subcommands.add_parser("list")
    list_parser.add_argument("--search", default=None)
    for name in ("mark", "unmark"):
        station_parser = subcommands.add_parser(name)
        station_parser.add_argument("station_id")
    subcommands.add_parser("clear")
    subcommands.add_parser("leaderboard")
    export_parser = subcommands.add_parser("export", help="Write stations as GeoJSON.")
    export_parser.add_argument("--output", default=None)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())

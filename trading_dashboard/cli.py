from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Sequence

from trading_dashboard.core.domain.errors import StoreError
from trading_dashboard.core.events.sinks.file_recorder import FileRecorderSink
from trading_dashboard.core.events.sinks.prometheus_sink import PrometheusEventSink
from trading_dashboard.core.events.sinks.sink_logging import LoggingEventSink
from trading_dashboard.engine.config import EngineConfig
from trading_dashboard.engine.storage import JsonFileStorage
from trading_dashboard.stores.root_store import RootStore

LOGGER = logging.getLogger(__name__)

DEFAULT_STATE_FILE = Path.home() / ".trading-dashboard" / "session.json"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _load_config(path: Path | None) -> EngineConfig:
    if path is not None:
        return EngineConfig.from_json_file(path)
    return EngineConfig.from_env()


def _require_session(root: RootStore) -> str:
    if not root.auth.is_authenticated or not root.auth.state.user_id:
        raise StoreError(kind="authentication", message="Not logged in; run `login` first", action="session")
    return root.auth.state.user_id


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_login(root: RootStore, args: argparse.Namespace) -> Any:
    api_key = args.api_key or os.environ.get("TRADING_ENGINE_API_KEY", "")
    return root.auth.login(args.user_id, api_key)


def _cmd_logout(root: RootStore, _args: argparse.Namespace) -> Any:
    root.auth.logout()
    return {"authenticated": False}


def _cmd_strategies(root: RootStore, args: argparse.Namespace) -> Any:
    _require_session(root)
    store = root.strategies
    store.fetch_strategies()

    if args.strategies_cmd == "list":
        if args.status:
            store.set_filters(status=args.status, refetch=False)
        return {
            "summary": store.summary.model_dump(mode="json"),
            "strategies": [s.model_dump(mode="json") for s in store.filtered],
        }
    if args.strategies_cmd == "activate":
        store.activate(args.strategy_id, args.amount)
    elif args.strategies_cmd == "deactivate":
        store.deactivate(args.strategy_id)
    elif args.strategies_cmd == "pause":
        store.pause(args.strategy_id)
    elif args.strategies_cmd == "resume":
        store.resume(args.strategy_id)
    elif args.strategies_cmd == "reallocate":
        store.reallocate_capital(args.strategy_id, args.amount)
    strategy = store.get(args.strategy_id)
    return strategy.model_dump(mode="json") if strategy is not None else None


def _cmd_orders(root: RootStore, args: argparse.Namespace) -> Any:
    user_id = _require_session(root)
    store = root.orders
    store.set_user(user_id)

    if args.orders_cmd == "list":
        store.set_filters(status=args.status, date_mode=args.mode, refetch=False)
        store.set_page_size(args.page_size, refetch=False)
        store.set_page(args.page, refetch=False)
        store.refresh()
        return {
            "summary": store.summary.model_dump(mode="json"),
            "total": store.total,
            "page": store.page,
            "total_pages": store.total_pages,
            "orders": [o.model_dump(mode="json") for o in store.visible],
        }
    store.set_filters(date_mode="all", refetch=False)
    store.fetch_orders()
    store.cancel(args.order_id)
    order = store.get(args.order_id)
    return order.model_dump(mode="json") if order is not None else None


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trading-dashboard",
        description="Operate strategies and orders on a trading engine",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to engine JSON config (defaults to TRADING_ENGINE_* environment variables).",
    )
    parser.add_argument(
        "--state-file",
        type=Path,
        default=DEFAULT_STATE_FILE,
        help="JSON file holding the session credentials.",
    )
    parser.add_argument(
        "--events-file",
        type=Path,
        default=None,
        help="Append every store event to this file as JSON lines.",
    )
    parser.add_argument("--log-level", default="WARNING", help="Python logging level.")

    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="Authenticate and store the session.")
    login.add_argument("user_id")
    login.add_argument("--api-key", default=None, help="API key (or TRADING_ENGINE_API_KEY).")
    login.set_defaults(handler=_cmd_login)

    logout = sub.add_parser("logout", help="Drop the stored session.")
    logout.set_defaults(handler=_cmd_logout)

    strategies = sub.add_parser("strategies", help="List or operate strategies.")
    strategies_sub = strategies.add_subparsers(dest="strategies_cmd", required=True)
    strategies_list = strategies_sub.add_parser("list")
    strategies_list.add_argument("--status", default=None)
    activate = strategies_sub.add_parser("activate")
    activate.add_argument("strategy_id")
    activate.add_argument("--amount", type=float, default=0.0)
    for name in ("deactivate", "pause", "resume"):
        cmd = strategies_sub.add_parser(name)
        cmd.add_argument("strategy_id")
    reallocate = strategies_sub.add_parser("reallocate")
    reallocate.add_argument("strategy_id")
    reallocate.add_argument("amount", type=float)
    strategies.set_defaults(handler=_cmd_strategies)

    orders = sub.add_parser("orders", help="List or cancel orders.")
    orders_sub = orders.add_subparsers(dest="orders_cmd", required=True)
    orders_list = orders_sub.add_parser("list")
    orders_list.add_argument("--status", default=None)
    orders_list.add_argument("--mode", choices=("today", "this_week", "last_week", "all"), default="today")
    orders_list.add_argument("--page", type=int, default=1)
    orders_list.add_argument("--page-size", type=int, default=20)
    cancel = orders_sub.add_parser("cancel")
    cancel.add_argument("order_id")
    orders.set_defaults(handler=_cmd_orders)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    sinks = [
        LoggingEventSink(logging.getLogger("trading_dashboard.events")),
        PrometheusEventSink(job="trading_dashboard_cli"),
    ]
    if args.events_file is not None:
        sinks.append(FileRecorderSink(args.events_file))
    root = RootStore(_load_config(args.config), storage=JsonFileStorage(args.state_file), sinks=sinks)
    with root:
        try:
            result = args.handler(root, args)
        except StoreError as exc:
            _print_json({"error": exc.to_dict()})
            return 1
    _print_json(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())

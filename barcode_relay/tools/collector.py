"""
Demo collector - a small aiohttp server that receives relay events.

Routes:
    POST /events  record the JSON body, answer {"received": true}
    GET  /events  the recorded events, oldest first
    GET  /        auto-refreshing HTML view of the same list

Only the most recent events are kept in memory.
"""

import argparse
import html
import json
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

from aiohttp import web

from barcode_relay.core.logging_config import configure_logging
from barcode_relay.core.logging_utils import get_module_logger


logger = get_module_logger("Collector")

MAX_EVENTS = 50
STORE_KEY = "event_store"


class EventStore:
    """Bounded in-memory list of received events."""

    def __init__(self, max_events: int = MAX_EVENTS):
        self._events: Deque[Dict[str, Any]] = deque(maxlen=max_events)
        self.total_received = 0

    def add(self, data: Any) -> Dict[str, Any]:
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "data": data,
        }
        self._events.append(record)
        self.total_received += 1
        return record

    def list(self) -> List[Dict[str, Any]]:
        return list(self._events)

    def __len__(self) -> int:
        return len(self._events)


async def post_event_handler(request: web.Request) -> web.Response:
    """POST /events - Record one event."""
    try:
        data = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return web.json_response(
            {"received": False, "error": "Body must be JSON"},
            status=400,
        )

    request.app[STORE_KEY].add(data)
    logger.info("POST received: %s", data)
    return web.json_response({"received": True})


async def list_events_handler(request: web.Request) -> web.Response:
    """GET /events - Recorded events."""
    return web.json_response(request.app[STORE_KEY].list())


async def index_handler(request: web.Request) -> web.Response:
    """GET / - Human-readable view."""
    store: EventStore = request.app[STORE_KEY]
    body = (
        f"<h1>Events received: {len(store)}</h1>"
        f"<pre>{html.escape(json.dumps(store.list(), indent=2))}</pre>"
        "<script>setTimeout(() => location.reload(), 2000)</script>"
    )
    return web.Response(text=body, content_type="text/html")


def create_app(store: Optional[EventStore] = None) -> web.Application:
    """Create the collector application."""
    app = web.Application()
    app[STORE_KEY] = store if store is not None else EventStore()
    app.router.add_get("/", index_handler)
    app.router.add_post("/events", post_event_handler)
    app.router.add_get("/events", list_events_handler)
    return app


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="barcode-relay-collector",
        description="Demo HTTP collector for barcode relay events",
    )
    parser.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=3000, help="Port (default: 3000)")
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        default="info",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    configure_logging(args.log_level, force=True, suppressed_loggers=("aiohttp.access",))
    logger.info("Collector listening on http://%s:%d", args.host, args.port)
    web.run_app(create_app(), host=args.host, port=args.port, print=None)


if __name__ == "__main__":
    main()

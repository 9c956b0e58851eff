"""
WebSocket streaming of a live report dashboard.

Each applied snapshot is rendered and sent as one JSON message; the first
message is the current state. The store subscription lives exactly as long
as the connection.
"""

import asyncio
import logging
from contextlib import suppress
from typing import Any, Callable

from fastapi import WebSocket, WebSocketDisconnect

from ecowatch.services.dashboard import ReportDashboard, watch_reports
from ecowatch.services.store import ReportFilter, ReportStore

logger = logging.getLogger(__name__)

Renderer = Callable[[ReportDashboard], Any]


async def wait_for_disconnect(websocket: WebSocket) -> None:
    """Drain inbound frames (text or binary) until the client goes away."""
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


async def stream_dashboard(
    websocket: WebSocket,
    store: ReportStore,
    report_filter: ReportFilter,
    render: Renderer
) -> None:
    """Send render(dashboard) after every snapshot until the client disconnects."""
    outbox: asyncio.Queue = asyncio.Queue()
    dashboard = ReportDashboard()
    dashboard.add_listener(lambda d: outbox.put_nowait(render(d)))

    async with watch_reports(store, report_filter, dashboard):
        disconnected = asyncio.create_task(wait_for_disconnect(websocket))
        next_message = None
        try:
            while True:
                next_message = asyncio.create_task(outbox.get())
                done, _ = await asyncio.wait(
                    {next_message, disconnected},
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if disconnected in done:
                    break
                await websocket.send_json(next_message.result())
        except WebSocketDisconnect:
            pass
        finally:
            if next_message is not None:
                next_message.cancel()
            disconnected.cancel()
            with suppress(asyncio.CancelledError, WebSocketDisconnect, RuntimeError):
                await disconnected

    logger.info(f"Live feed {report_filter.describe()} closed after {dashboard.snapshot_count} snapshot(s)")

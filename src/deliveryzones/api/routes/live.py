"""Live zone change feed for dashboard sessions."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, WebSocket
from fastapi.concurrency import run_in_threadpool

from ...models.domain import ZoneSnapshot
from ...schemas.zones import ZoneSnapshotModel
from ...services.errors import ZoneEngineError
from ...services.sync.broker import get_broker
from ...services.zones.service import get_zone_map

logger = logging.getLogger(__name__)

router = APIRouter(tags=["live"])


def _payload(snapshot: ZoneSnapshot) -> dict:
    return ZoneSnapshotModel.from_domain(snapshot).model_dump(mode="json")


@router.websocket("/restaurants/{restaurant_id}/zones/live")
async def zone_feed(websocket: WebSocket, restaurant_id: str) -> None:
    """Send the current zone snapshot, then a new one after every change.

    Client messages are ignored; the feed ends when the client disconnects.
    """
    await websocket.accept()
    try:
        zone_map = await run_in_threadpool(get_zone_map, restaurant_id)
    except ZoneEngineError as exc:
        logger.error("Cannot open zone feed for %s: %s", restaurant_id, exc)
        await websocket.close(code=1011, reason=str(exc)[:120])
        return

    loop = asyncio.get_running_loop()
    pending: asyncio.Queue[ZoneSnapshot] = asyncio.Queue()

    def deliver(snapshot: ZoneSnapshot) -> None:
        loop.call_soon_threadsafe(pending.put_nowait, snapshot)

    unsubscribe = get_broker().subscribe(restaurant_id, deliver)
    receiver = asyncio.ensure_future(websocket.receive())
    try:
        last_sent = zone_map.registry.snapshot()
        await websocket.send_json(_payload(last_sent))
        while True:
            getter = asyncio.ensure_future(pending.get())
            done, _ = await asyncio.wait({getter, receiver}, return_when=asyncio.FIRST_COMPLETED)
            if getter in done:
                snapshot = getter.result()
                if snapshot.version > last_sent.version:
                    await websocket.send_json(_payload(snapshot))
                    last_sent = snapshot
            else:
                getter.cancel()
            if receiver in done:
                if receiver.result()["type"] == "websocket.disconnect":
                    break
                receiver = asyncio.ensure_future(websocket.receive())
    finally:
        unsubscribe()
        receiver.cancel()

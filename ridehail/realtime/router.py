import asyncio
import logging
from typing import Callable

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, status
from starlette.concurrency import run_in_threadpool
from starlette.websockets import WebSocketState

from ridehail.core.db import SessionLocal
from ridehail.core.deps import principal_from_token
from ridehail.core.security import Principal
from ridehail.domains.rides.service import get_ride_for, ride_view
from ridehail.realtime.feed import INSERT, UPDATE, Change, feed

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/realtime")


def _authenticate(token: str | None, role: str | None = None) -> Principal | None:
    if not token:
        return None
    try:
        principal = principal_from_token(token)
    except HTTPException:
        return None
    if role is not None and principal.role != role:
        return None
    return principal


def _ride_row_for(principal: Principal, row: dict) -> dict | None:
    """A ride that left `pending` is only streamed to its rider, its driver and admins."""
    participant = principal.sub in (row.get("rider_id"), row.get("driver_id"))
    if not (principal.is_admin or participant or row.get("status") == "pending"):
        return None
    return ride_view(row, principal.sub)


def _can_watch_ride(ride_id: str, principal: Principal) -> bool:
    db = SessionLocal()
    try:
        get_ride_for(db, ride_id, principal)
    except HTTPException:
        return False
    finally:
        db.close()
    return True


async def _drain(websocket: WebSocket, queue: asyncio.Queue) -> None:
    # Clients may send keep-alive text; anything else ends the stream.
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning("realtime reader stopped: path=%s err=%r", websocket.url.path, e)
    finally:
        queue.put_nowait(None)


async def _stream(
    websocket: WebSocket,
    *,
    table: str,
    events: set[str],
    filters: dict | None = None,
    view: Callable[[dict], dict | None] | None = None,
) -> None:
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def _enqueue(change: Change) -> None:
        # Publishers run on worker threads; hop onto the socket's loop.
        loop.call_soon_threadsafe(queue.put_nowait, change)

    # Subscribe before accepting so nothing committed after the handshake is missed.
    sub = feed.subscribe(table, _enqueue, events=events, filters=filters)
    reader: asyncio.Task | None = None
    try:
        await websocket.accept()
        reader = asyncio.create_task(_drain(websocket, queue))
        while True:
            change = await queue.get()
            if change is None:
                if websocket.client_state == WebSocketState.CONNECTED:
                    await websocket.close(code=status.WS_1003_UNSUPPORTED_DATA)
                break
            payload = change.to_dict()
            if view is not None:
                payload["new"] = view(payload["new"])
                if payload["new"] is None:
                    continue
            await websocket.send_json(payload)
    except WebSocketDisconnect:
        pass
    finally:
        sub.unsubscribe()
        if reader is not None:
            reader.cancel()


@router.websocket("/rides/{ride_id}")
async def ride_updates(websocket: WebSocket, ride_id: str, token: str | None = None) -> None:
    principal = _authenticate(token)
    if principal is None or not await run_in_threadpool(_can_watch_ride, ride_id, principal):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await _stream(
        websocket,
        table="ride_requests",
        events={UPDATE},
        filters={"id": ride_id},
        view=lambda row: _ride_row_for(principal, row),
    )


@router.websocket("/ride-requests")
async def pending_ride_requests(websocket: WebSocket, token: str | None = None) -> None:
    principal = _authenticate(token, role="driver")
    if principal is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await _stream(
        websocket,
        table="ride_requests",
        events={INSERT},
        filters={"status": "pending"},
        view=lambda row: ride_view(row, None),
    )


@router.websocket("/offers")
async def driver_offers(websocket: WebSocket, token: str | None = None) -> None:
    principal = _authenticate(token, role="driver")
    if principal is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await _stream(websocket, table="ride_offers", events={INSERT}, filters={"driver_id": principal.sub})


@router.websocket("/driver-locations")
async def driver_locations(websocket: WebSocket, token: str | None = None, driver_id: str | None = None) -> None:
    principal = _authenticate(token)
    if principal is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    filters = {"driver_id": driver_id} if driver_id else None
    await _stream(websocket, table="driver_locations", events={INSERT, UPDATE}, filters=filters)


@router.websocket("/notifications")
async def notifications(websocket: WebSocket, token: str | None = None) -> None:
    principal = _authenticate(token)
    if principal is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await _stream(websocket, table="notifications", events={INSERT}, filters={"user_id": principal.sub})

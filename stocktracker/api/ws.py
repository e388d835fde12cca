from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.concurrency import run_in_threadpool

from stocktracker.services.broadcast import STOCK_UPDATES_TOPIC, Subscription

logger = logging.getLogger(__name__)

ws_router = APIRouter()


async def _forward_updates(websocket: WebSocket, sub: Subscription) -> None:
    while True:
        message = await sub.queue.get()
        await websocket.send_json({'type': 'stock-update', **message})


async def _stop_forwarding(sender: asyncio.Task) -> None:
    sender.cancel()
    try:
        await sender
    except (asyncio.CancelledError, WebSocketDisconnect):
        pass
    except Exception as exc:
        logger.warning("[WS][forward_error] error=%s", exc)


@ws_router.websocket('/ws/stocks')
async def stock_updates_stream(websocket: WebSocket):
    broadcaster = websocket.app.state.broadcaster
    store = websocket.app.state.price_store

    await websocket.accept()
    sub = broadcaster.subscribe(STOCK_UPDATES_TOPIC)
    logger.info("[WS][connect] client=%s", websocket.client)
    sender: asyncio.Task | None = None

    try:
        rows = await run_in_threadpool(store.list_all)
        await websocket.send_json({
            'type': 'snapshot',
            'stocks': [row.model_dump(mode='json') for row in rows],
        })
        sender = asyncio.create_task(_forward_updates(websocket, sub))

        # clients only send pings; the receive loop exists to notice disconnects
        while True:
            message = await websocket.receive()
            if message['type'] == 'websocket.disconnect':
                break
            text = message.get('text')
            if text is None:
                await websocket.send_json({'type': 'error', 'message': 'text frames only'})
                continue
            if text.strip().lower() == 'ping':
                await websocket.send_json({'type': 'pong'})
    except WebSocketDisconnect:
        pass
    finally:
        if sender is not None:
            await _stop_forwarding(sender)
        broadcaster.unsubscribe(sub)
        logger.info("[WS][disconnect] client=%s dropped=%s", websocket.client, sub.dropped)

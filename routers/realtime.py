import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from services.realtime import WATCHED_COLLECTIONS, ChangeEvent

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])


@router.websocket("/ws/changes")
async def changes(websocket: WebSocket, token: str = Query(...)):
    """Push change notifications to a signed-in browser"""
    registry = websocket.app.state.registry
    store = await registry.get_store(token)
    if store is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    user_id = store.user.id

    async def forward(event: ChangeEvent):
        await websocket.send_json(event.model_dump())

    subscriptions = [store.feed.subscribe(table, forward) for table in WATCHED_COLLECTIONS]
    try:
        while True:
            # Clients only listen; reading detects the disconnect
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("Change listener for %s disconnected", user_id)
    finally:
        for subscription in subscriptions:
            subscription.unsubscribe()

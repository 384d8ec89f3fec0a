import asyncio
import json
import logging
from typing import List

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from fastapi.concurrency import run_in_threadpool
from jose import JWTError
from pydantic import ValidationError
from sqlalchemy.orm import Session

from alumni_connect.auth.supabase_auth import decode_token, get_current_user
from alumni_connect.core.errors import ConnectError
from alumni_connect.core.message_store import MessageStore
from alumni_connect.database import SessionLocal, get_db
from alumni_connect.realtime.relay import message_relay
from alumni_connect.schemas.message_schema import MessageCreate, MessageOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/connections", tags=["Messages"])

INVALID_PAYLOAD = "invalid_payload"


def get_message_store(db: Session = Depends(get_db)) -> MessageStore:
    return MessageStore(db)


# --------------------------------------------------
# HISTORY
# --------------------------------------------------
@router.get("/{connection_id}/messages", response_model=List[MessageOut])
def list_messages(
    connection_id: int,
    store: MessageStore = Depends(get_message_store),
    current_user: dict = Depends(get_current_user),
):
    store.require_party(connection_id, current_user["sub"])
    return [m.to_record() for m in store.list_history(connection_id)]


# --------------------------------------------------
# SEND
# --------------------------------------------------
@router.post(
    "/{connection_id}/messages",
    response_model=MessageOut,
    status_code=201,
)
def send_message(
    connection_id: int,
    payload: MessageCreate,
    store: MessageStore = Depends(get_message_store),
    current_user: dict = Depends(get_current_user),
):
    message = store.append(connection_id, current_user["sub"], payload.content)
    return message.to_record()


# --------------------------------------------------
# REALTIME CHAT SOCKET
# --------------------------------------------------
def _with_store(fn):
    # Sockets outlive a request, so every store call gets its own session
    db = SessionLocal()
    try:
        return fn(MessageStore(db))
    finally:
        db.close()


@router.websocket("/{connection_id}/messages/ws")
async def chat_socket(
    websocket: WebSocket,
    connection_id: int,
    token: str = Query(None),
):
    try:
        user_id = decode_token(token or "")["sub"]
    except JWTError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    try:
        await run_in_threadpool(
            _with_store, lambda s: s.require_party(connection_id, user_id)
        )
    except ConnectError as e:
        logger.warning(f"Chat socket refused for {user_id} on {connection_id}: {e}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    relay = message_relay
    # Subscribe before the snapshot; anything already in it is skipped by id
    subscription = relay.subscribe(
        connection_id,
        lambda event: loop.call_soon_threadsafe(queue.put_nowait, event),
    )
    logger.info(f"Chat socket opened: user {user_id}, connection {connection_id}")

    async def forward_events(seen: set):
        while True:
            event = await queue.get()
            if event.message_id in seen:
                continue
            seen.add(event.message_id)
            await websocket.send_json(event.to_dict())

    async def send_error(code: str, message: str):
        await websocket.send_json({"type": "error", "code": code, "message": message})

    async def handle_actions():
        while True:
            try:
                data = json.loads(await websocket.receive_text())
            except ValueError:
                data = None
            if not isinstance(data, dict):
                await send_error(INVALID_PAYLOAD, "Frames must be JSON objects")
                continue
            action = data.get("action", "")

            if action == "ping":
                await websocket.send_json({"type": "pong"})
            elif action == "send":
                try:
                    content = MessageCreate.model_validate(data).content
                except ValidationError as e:
                    logger.debug(f"Rejected send frame from {user_id}: {e}")
                    await send_error(INVALID_PAYLOAD, "Message content must be a string")
                    continue

                try:
                    record = await run_in_threadpool(
                        _with_store,
                        lambda s: s.append(connection_id, user_id, content).to_record(),
                    )
                except ConnectError as e:
                    await send_error(e.code, e.message)
                    continue
                await websocket.send_json(
                    {"type": "ack", "client_id": data.get("client_id"), "record": record}
                )
            else:
                await send_error("unknown_action", str(action))

    tasks = []
    try:
        history = await run_in_threadpool(
            _with_store,
            lambda s: [m.to_record() for m in s.list_history(connection_id)],
        )
        seen = {record["id"] for record in history}
        await websocket.send_json({"type": "history", "messages": history})

        tasks = [
            asyncio.create_task(forward_events(seen)),
            asyncio.create_task(handle_actions()),
        ]
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            task.result()
    except WebSocketDisconnect:
        pass
    finally:
        for task in tasks:
            task.cancel()
        relay.unsubscribe(subscription)
        logger.info(f"Chat socket closed: user {user_id}, connection {connection_id}")

"""
WS /live?token=...: live auction events.

Anonymous connections receive global events (newBid, auctionClosed). A valid
token also subscribes the socket to the caller's notification channel.
Inbound messages are ignored apart from keeping the connection open.
"""

from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from bidding.errors import BiddingError
from bidding.identity import resolve_identity
from utils import log

logger = log.get_logger(__name__)

router = APIRouter(tags=["live"])


@router.websocket("/live")
async def live_endpoint(ws: WebSocket, token: Optional[str] = Query(default=None)):
    hub = ws.app.state.hub
    ctx = ws.app.state.bidding

    user_id = None
    if token:
        try:
            identity = await resolve_identity(token, ctx.verifier, ctx.revocations, ctx.users)
        except BiddingError as e:
            logger.info(f"Refusing live connection: {e.message}")
            await ws.close(code=status.WS_1008_POLICY_VIOLATION, reason=e.message)
            return
        user_id = identity.user_id

    await hub.connect(ws, user_id)
    try:
        while True:
            await ws.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(ws)

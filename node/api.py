"""
HTTP front-end for an overlay node.

Endpoints:
- POST /messages - Encrypt and send a message to one peer or to all
- GET /messages - Drain received messages (each is returned once)
- GET /peers - List peers whose keys we know
- GET /health - Node name and lifecycle state
"""

from typing import List, Optional

from fastapi import FastAPI, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field
from loguru import logger

from node.overlay import OverlayNode


# =============================================================================
# API Models
# =============================================================================

class SubmitRequest(BaseModel):
    """Message to send."""

    msg: str = Field(..., description="Plaintext to encrypt per recipient")
    to: Optional[str] = Field(default=None, description="Peer name; omit to broadcast")


class OutcomeModel(BaseModel):
    peer: str
    ok: bool
    error: Optional[str] = None


class SubmitResponse(BaseModel):
    sent: int = Field(..., description="Number of peers the message was published to")
    outcomes: List[OutcomeModel]


class MessageModel(BaseModel):
    """A received message."""

    model_config = ConfigDict(populate_by_name=True)

    sender: str = Field(..., alias="from")
    msg: str
    ts: str


class HealthResponse(BaseModel):
    status: str
    name: str
    state: str


# =============================================================================
# Application
# =============================================================================

def create_app(node: OverlayNode) -> FastAPI:
    app = FastAPI(
        title="Overlay Node API",
        description="Submit and poll end-to-end encrypted overlay messages",
        version="1.0.0",
    )

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        return HealthResponse(status="ok", name=node.name, state=node.state.value)

    @app.get("/peers", response_model=List[str])
    async def list_peers():
        return node.peers.names()

    # sync handlers run in FastAPI's threadpool, concurrently with the node's event loop
    @app.post("/messages", response_model=SubmitResponse)
    def submit_message(req: SubmitRequest):
        if not node.ready:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Node is {node.state.value}",
            )
        try:
            req.msg.encode("utf-8")
        except UnicodeEncodeError:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="msg is not valid UTF-8 text",
            )
        outcomes = node.send_to(req.to, req.msg)
        sent = sum(1 for o in outcomes if o.ok)
        logger.info("Sent message to {}/{} peers", sent, len(outcomes))
        return SubmitResponse(
            sent=sent,
            outcomes=[OutcomeModel(peer=o.peer, ok=o.ok, error=o.error) for o in outcomes],
        )

    @app.get("/messages", response_model=List[MessageModel])
    def poll_messages():
        return [
            MessageModel(sender=m.sender, msg=m.plaintext, ts=m.ts)
            for m in node.inbox.drain_all()
        ]

    return app

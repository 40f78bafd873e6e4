"""
View Hub - the WebSocket side of requestRedraw() and notifyChanged().

Every attached view gets a "redraw" message whenever the diagram or the
editing session changes. Views that send "subscribe" also receive the JSON
snapshot after each mutation, the same document the auto-save writes.
"""
import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import WebSocket

logger = logging.getLogger(__name__)


@dataclass
class ViewState:
    wants_snapshots: bool = False


class ViewHub:
    """Attached views keyed by their socket."""

    def __init__(self):
        self._views: dict[WebSocket, ViewState] = {}
        self._lock = asyncio.Lock()

    @property
    def view_count(self) -> int:
        return len(self._views)

    async def attach(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._views[websocket] = ViewState()
        logger.info("View attached (%d open)", len(self._views))

    async def detach(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._views.pop(websocket, None)
        logger.info("View detached (%d open)", len(self._views))

    def handle_message(self, websocket: WebSocket, text: str) -> Optional[dict]:
        """
        Apply a control message from a view and return the reply, if any.

        Recognized messages: "ping", "subscribe", "unsubscribe".
        """
        view = self._views.get(websocket)
        if view is None:
            return None
        if text == "ping":
            return {"type": "pong"}
        if text in ("subscribe", "unsubscribe"):
            view.wants_snapshots = text == "subscribe"
            return {"type": f"{text}d"}
        logger.debug("Ignoring unknown view message %r", text)
        return None

    async def _send(self, payload: dict, snapshots_only: bool = False) -> None:
        if not self._views:
            return
        text = json.dumps(payload)
        async with self._lock:
            dead = []
            for websocket, view in self._views.items():
                if snapshots_only and not view.wants_snapshots:
                    continue
                try:
                    await websocket.send_text(text)
                except Exception as e:
                    logger.debug("Dropping view after failed send: %s", e)
                    dead.append(websocket)
            for websocket in dead:
                del self._views[websocket]

    async def push_redraw(self, node_count: int, link_count: int) -> None:
        """Ask every view to repaint (views re-fetch GET /api/diagram or a render)."""
        await self._send({"type": "redraw", "nodes": node_count, "links": link_count})

    async def push_snapshot(self, snapshot: str) -> None:
        """Send the latest persisted document to subscribed views."""
        await self._send({"type": "changed", "diagram": json.loads(snapshot)},
                         snapshots_only=True)


view_hub = ViewHub()

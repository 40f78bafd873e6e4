"""
FSM Designer Backend - FastAPI Application

It provides:
- REST API for the editor operations (nodes, labels, pointer gestures, keys)
- JSON import/export of the whole diagram
- SVG and PNG exports
- WebSocket endpoint carrying redraw requests (and, on request, change
  snapshots) to connected views

The server keeps a single EditorSession, the interaction state of the one
view it serves.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from fsm_core.backends import RasterBackend
from fsm_core.geometry import Point, rect_from_points
from fsm_core.graph import EntityNotFoundError
from fsm_core.models import Node
from fsm_core.session import EditorSession

from .diagram_manager import diagram_manager
from .models import (
    CreateNodeRequest,
    PointerRequest,
    RectSelectRequest,
    SessionStateRequest,
    TypeRequest,
    UpdateEntityRequest,
    entity_to_dict,
)
from .view_hub import view_hub


session = EditorSession()


# --- Async view notification ---
# DiagramManager callbacks are synchronous; they only record what happened
# and wake the pusher task, which talks to the views. Bursts of changes
# between two wakeups collapse into one redraw and the latest snapshot.

_wakeup: Optional[asyncio.Event] = None
_latest_snapshot: Optional[str] = None


def on_redraw_requested():
    if _wakeup is not None:
        _wakeup.set()


def on_diagram_changed(snapshot: str):
    global _latest_snapshot
    _latest_snapshot = snapshot


diagram_manager.on_change(on_diagram_changed)
diagram_manager.on_redraw(on_redraw_requested)


async def view_pusher(event: asyncio.Event):
    """Background task forwarding changes and redraw requests to the views."""
    global _latest_snapshot
    while True:
        await event.wait()
        event.clear()

        snapshot, _latest_snapshot = _latest_snapshot, None
        if snapshot is not None:
            await view_hub.push_snapshot(snapshot)
        graph = diagram_manager.graph
        await view_hub.push_redraw(len(graph.nodes), len(graph.links))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Restore the auto-save, then run the view pusher until shutdown."""
    global _wakeup
    # Created here so the event belongs to the running loop
    _wakeup = asyncio.Event()
    diagram_manager.restore_autosave()

    pusher_task = asyncio.create_task(view_pusher(_wakeup))

    yield

    _wakeup = None
    pusher_task.cancel()
    try:
        await pusher_task
    except asyncio.CancelledError:
        pass


# --- FastAPI App ---

app = FastAPI(
    title="FSM Designer API",
    description="Backend API for the finite state machine diagram editor",
    version="1.0.0",
    lifespan=lifespan
)

# CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _selection_ids() -> list[str]:
    return [entity.id for entity in session.selected]


def _not_found(e: EntityNotFoundError) -> HTTPException:
    return HTTPException(status_code=404, detail=str(e.args[0]) if e.args else "Not found")


# --- Health Check ---

@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "views": view_hub.view_count}


# --- Diagram State ---

@app.get("/api/diagram")
async def get_diagram():
    """Get the current diagram state and selection."""
    return {**diagram_manager.get_state(), "selected": _selection_ids()}


@app.put("/api/diagram")
async def load_diagram(request: Request):
    """
    Replace the diagram with a JSON document (the import path).

    A malformed document is not an error: the diagram is reset to empty.
    """
    body = await request.body()
    graph = diagram_manager.load_from_document(body, session)
    return {
        "success": True,
        "nodes": len(graph.nodes),
        "links": len(graph.links),
        "diagram": graph.to_json_dict(),
    }


@app.post("/api/diagram/clear")
async def clear_diagram():
    """Remove every node and link."""
    diagram_manager.clear(session)
    return {"success": True}


# --- Node Operations ---

@app.post("/api/nodes")
async def create_node(request: CreateNodeRequest):
    """Create a new node."""
    node = diagram_manager.create_node(request.x, request.y)
    if request.text:
        diagram_manager.set_label(node.id, request.text)
    return {"success": True, "node": entity_to_dict(node)}


@app.post("/api/nodes/{node_id}/toggle-accept")
async def toggle_accept(node_id: str):
    """Toggle whether a node is an accept state."""
    try:
        node = diagram_manager.toggle_accept_state(node_id)
    except EntityNotFoundError as e:
        raise _not_found(e)
    return {"success": True, "node": entity_to_dict(node)}


# --- Entity Operations ---

@app.get("/api/entities/{entity_id}")
async def get_entity(entity_id: str):
    """Get a specific node or link."""
    try:
        entity = diagram_manager.graph.get_entity(entity_id)
    except EntityNotFoundError as e:
        raise _not_found(e)
    return {"success": True, "entity": entity_to_dict(entity)}


@app.patch("/api/entities/{entity_id}")
async def update_entity(entity_id: str, request: UpdateEntityRequest):
    """Update a label, or move a node."""
    try:
        entity = diagram_manager.graph.get_entity(entity_id)
        if request.x is not None or request.y is not None:
            if not isinstance(entity, Node):
                raise HTTPException(status_code=400, detail="Only nodes can be moved")
            diagram_manager.move_node(
                entity_id,
                request.x if request.x is not None else entity.x,
                request.y if request.y is not None else entity.y,
            )
        if request.text is not None:
            diagram_manager.set_label(entity_id, request.text)
    except EntityNotFoundError as e:
        raise _not_found(e)
    return {"success": True, "entity": entity_to_dict(entity)}


@app.delete("/api/entities/{entity_id}")
async def delete_entity(entity_id: str):
    """Delete a node (and its links) or a link."""
    try:
        diagram_manager.delete_entity(entity_id, session)
    except EntityNotFoundError as e:
        raise _not_found(e)
    return {"success": True}


# --- Queries ---

@app.get("/api/hit-test")
async def hit_test(x: float = Query(...), y: float = Query(...)):
    """Return the topmost entity under a point, if any."""
    entity = diagram_manager.hit_test(x, y)
    return {"success": True, "entity": entity_to_dict(entity) if entity is not None else None}


@app.post("/api/select-rect")
async def select_rect(request: RectSelectRequest):
    """Select the nodes caught by a rubber-band rectangle."""
    rect = rect_from_points(Point(request.x1, request.y1), Point(request.x2, request.y2))
    nodes = diagram_manager.rect_select(rect)
    session.select(*nodes)
    diagram_manager.request_redraw()
    return {"success": True, "selected": _selection_ids()}


# --- Pointer Gestures ---

@app.post("/api/pointer/down")
async def pointer_down(request: PointerRequest):
    target = diagram_manager.begin_drag(session, request.x, request.y,
                                        shift=request.shift, ctrl=request.ctrl)
    return {"success": True, "target": target.id if target is not None else None,
            "selected": _selection_ids()}


@app.post("/api/pointer/move")
async def pointer_move(request: PointerRequest):
    diagram_manager.update_drag(session, request.x, request.y)
    return {"success": True, "selected": _selection_ids()}


@app.post("/api/pointer/up")
async def pointer_up():
    link = diagram_manager.end_drag(session)
    return {"success": True, "link": entity_to_dict(link) if link is not None else None,
            "selected": _selection_ids()}


@app.post("/api/pointer/double-click")
async def pointer_double_click(request: PointerRequest):
    entity = diagram_manager.double_click(session, request.x, request.y)
    return {"success": True, "entity": entity_to_dict(entity) if entity is not None else None}


# --- Keyboard ---

@app.post("/api/keys/type")
async def type_text(request: TypeRequest):
    """Type characters into the selected label; non-printable ones are ignored."""
    accepted = sum(diagram_manager.type_character(session, char) for char in request.text)
    return {"success": True, "accepted": accepted}


@app.post("/api/keys/backspace")
async def backspace():
    return {"success": diagram_manager.backspace(session)}


@app.post("/api/keys/delete")
async def delete_selected():
    return {"success": diagram_manager.delete_selected(session)}


@app.patch("/api/session")
async def update_session(request: SessionStateRequest):
    """Feed caret-blink and focus state from the view."""
    if request.caret_visible is not None:
        session.caret_visible = request.caret_visible
    if request.has_focus is not None:
        session.has_focus = request.has_focus
    diagram_manager.request_redraw()
    return {"success": True, "show_caret": session.show_caret}


# --- Exports ---

@app.get("/api/export/svg")
async def export_svg():
    """Export the diagram as a standalone SVG document."""
    return Response(content=diagram_manager.export_document(), media_type="image/svg+xml")


@app.get("/api/export/png")
async def export_png():
    """Export the diagram as a PNG image."""
    return Response(content=diagram_manager.export_raster_image(), media_type="image/png")


@app.get("/api/view.png")
async def render_view():
    """Render the editor view (selection, drag link, caret) as PNG."""
    backend = RasterBackend(diagram_manager.canvas_width, diagram_manager.canvas_height)
    diagram_manager.render(backend, session)
    return Response(content=backend.to_png(), media_type="image/png")


@app.get("/api/export/json")
async def export_json():
    """Export the diagram in its persisted JSON shape."""
    return Response(content=diagram_manager.to_json(), media_type="application/json")


# --- WebSocket ---

@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    View channel: redraw requests, plus diagram snapshots after "subscribe".
    """
    await view_hub.attach(websocket)

    try:
        while True:
            reply = view_hub.handle_message(websocket, await websocket.receive_text())
            if reply is not None:
                await websocket.send_json(reply)
    except WebSocketDisconnect:
        await view_hub.detach(websocket)

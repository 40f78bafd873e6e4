"""
Diagram Manager - editor operations, change notification and persistence.

This module implements:
- The collaborator-to-core calls (create, toggle, drag, label, delete, load)
- Pointer/keyboard gestures driven through a caller-owned EditorSession
- notify_changed(snapshot_json) callbacks after every mutation
- request_redraw() callbacks for purely visual changes (selection, drag link)
- Optional JSON auto-save, restored at startup
- SVG / PNG export that never touches the graph or the selection
"""

import logging
from pathlib import Path
from typing import Callable, Optional

from fsm_core.backends import RasterBackend, SVGExporter
from fsm_core.geometry import Point, Rect, rect_from_points
from fsm_core.graph import EntityNotFoundError, Graph, draw_graph
from fsm_core.models import (
    SNAP_TO_PADDING,
    AnyLink,
    Entity,
    Link,
    Node,
    SelfLink,
    StartLink,
    TemporaryLink,
)
from fsm_core.session import EditorSession

from . import config

logger = logging.getLogger(__name__)


PRINTABLE_FIRST = 0x20
PRINTABLE_LAST = 0x7E


class DiagramManager:
    """
    Owns the single Graph and applies every mutation to it.

    Interaction state is not kept here: gesture methods take the
    EditorSession of the view that produced the event.
    """

    def __init__(self, autosave_path: Optional[str | Path] = None,
                 canvas_width: int = 800, canvas_height: int = 600):
        self._graph = Graph()
        self._autosave_path = Path(autosave_path) if autosave_path else None
        self.canvas_width = canvas_width
        self.canvas_height = canvas_height
        self._on_change_callbacks: list[Callable[[str], None]] = []
        self._on_redraw_callbacks: list[Callable[[], None]] = []

    # --- Properties ---

    @property
    def graph(self) -> Graph:
        """Get the current graph."""
        return self._graph

    @property
    def autosave_path(self) -> Optional[Path]:
        return self._autosave_path

    # --- Callbacks ---

    def on_change(self, callback: Callable[[str], None]):
        """Register a callback receiving the JSON snapshot after each mutation."""
        self._on_change_callbacks.append(callback)

    def on_redraw(self, callback: Callable[[], None]):
        """Register a callback for redraw requests."""
        self._on_redraw_callbacks.append(callback)

    def request_redraw(self):
        """Signal views to repaint. Idempotent from the caller's point of view."""
        for callback in self._on_redraw_callbacks:
            callback()

    def _notify_change(self):
        """Snapshot, auto-save, notify listeners, then ask for a redraw."""
        snapshot = self._graph.to_json()
        self._autosave(snapshot)
        for callback in self._on_change_callbacks:
            callback(snapshot)
        self.request_redraw()

    # --- Persistence ---

    def _autosave(self, snapshot: str):
        if self._autosave_path is None:
            return
        try:
            self._autosave_path.parent.mkdir(parents=True, exist_ok=True)
            self._autosave_path.write_text(snapshot, encoding="utf-8")
        except OSError as e:
            logger.warning("Auto-save to %s failed: %s", self._autosave_path, e)

    def restore_autosave(self) -> Graph:
        """Load the auto-save snapshot if there is one; bad content gives an empty graph."""
        if self._autosave_path is None or not self._autosave_path.exists():
            return self._graph
        try:
            text = self._autosave_path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning("Could not read auto-save %s: %s", self._autosave_path, e)
            text = ""
        self._graph = Graph.from_json(text)
        logger.info("Restored %d nodes and %d links from %s",
                    len(self._graph.nodes), len(self._graph.links), self._autosave_path)
        self.request_redraw()
        return self._graph

    def load_from_document(self, document: str | bytes,
                           session: Optional[EditorSession] = None) -> Graph:
        """Replace the whole graph with a JSON document (empty on malformed input)."""
        self._graph = Graph.from_json(document)
        if session is not None:
            session.clear_selection()
            session.current_link = None
        logger.debug("Loaded document: %d nodes, %d links",
                     len(self._graph.nodes), len(self._graph.links))
        self._notify_change()
        return self._graph

    def to_json(self) -> str:
        return self._graph.to_json()

    def clear(self, session: Optional[EditorSession] = None):
        """Remove every node and link."""
        self._graph.clear()
        if session is not None:
            session.clear_selection()
            session.current_link = None
        self._notify_change()

    # --- Entity Operations ---

    def create_node(self, x: float, y: float) -> Node:
        """Add a new state at (x, y)."""
        node = self._graph.add_node(Node(x=x, y=y))
        logger.debug("Created node %s at (%s, %s)", node.id, x, y)
        self._notify_change()
        return node

    def toggle_accept_state(self, node_id: str) -> Node:
        node = self._graph.get_node(node_id)
        node.is_accept_state = not node.is_accept_state
        self._notify_change()
        return node

    def set_label(self, entity_id: str, text: str) -> Entity:
        entity = self._graph.get_entity(entity_id)
        entity.text = text
        self._notify_change()
        return entity

    def move_node(self, node_id: str, x: float, y: float) -> Node:
        node = self._graph.get_node(node_id)
        node.x = x
        node.y = y
        self._notify_change()
        return node

    def add_link(self, link: AnyLink) -> AnyLink:
        """Insert an already-built link (its nodes must exist)."""
        self._graph.add_link(link)
        self._notify_change()
        return link

    def delete_entity(self, entity_id: str, session: Optional[EditorSession] = None):
        """Delete a node (with all its links) or a single link."""
        entity = self._graph.get_entity(entity_id)
        removed: list[Entity] = [entity]
        if isinstance(entity, Node):
            removed.extend(self._graph.remove_node(entity_id))
        else:
            self._graph.remove_link(entity_id)
        logger.debug("Deleted %s (%d entities removed)", entity_id, len(removed))

        if session is not None:
            session.selected = [
                obj for obj in session.selected
                if not any(obj is gone for gone in removed)
            ]
        self._notify_change()

    def hit_test(self, x: float, y: float) -> Optional[Entity]:
        return self._graph.hit_test(x, y)

    def rect_select(self, rect: Rect) -> list[Node]:
        return self._graph.rect_select(rect)

    # --- Pointer Gestures ---

    def begin_drag(self, session: EditorSession, x: float, y: float,
                   shift: bool = False, ctrl: bool = False) -> Optional[Entity]:
        """
        Pointer pressed at (x, y).

        The entity under the pointer is resolved by hit testing. Ctrl adds
        it to the selection; shift on a node starts a self link, shift on
        empty canvas starts a free link; otherwise the selection is dragged.
        Pressing empty canvas with nothing selected starts a rubber band.
        """
        mouse = Point(x, y)
        target = self._graph.hit_test(x, y)

        if ctrl and target is not None:
            session.selected.append(target)
        elif len(session.selected) <= 1 and target is not None:
            session.select(target)
        elif session.selected and target is None:
            session.clear_selection()
        elif not session.selected and target is None and not shift:
            session.selection_target = mouse

        session.moving_object = False
        session.original_click = mouse

        if target is not None:
            if shift and isinstance(target, Node):
                link = SelfLink(node=target.id)
                link.set_anchor_point(self._graph, x, y)
                session.current_link = link
            else:
                session.moving_object = True
                for obj in session.selected:
                    obj.set_mouse_start(self._graph, x, y)
            session.reset_caret()
        elif shift:
            session.current_link = TemporaryLink(mouse, mouse)

        self.request_redraw()
        return target

    def update_drag(self, session: EditorSession, x: float, y: float):
        """Pointer moved to (x, y) while pressed."""
        mouse = Point(x, y)
        selected = session.primary

        if session.current_link is not None:
            target = self._graph.hit_test(x, y)
            if not isinstance(target, Node):
                target = None

            if not isinstance(selected, Node):
                if target is not None:
                    link = StartLink(node=target.id)
                    link.set_anchor_point(self._graph, session.original_click.x,
                                          session.original_click.y)
                    session.current_link = link
                else:
                    session.current_link = TemporaryLink(session.original_click, mouse)
            elif target is selected:
                link = SelfLink(node=selected.id)
                link.set_anchor_point(self._graph, x, y)
                session.current_link = link
            elif target is not None:
                session.current_link = Link(node_a=selected.id, node_b=target.id)
            else:
                session.current_link = TemporaryLink(
                    selected.closest_point_on_circle(x, y), mouse
                )
            self.request_redraw()

        if session.moving_object:
            for obj in session.selected:
                obj.set_anchor_point(self._graph, x, y)
                if isinstance(obj, Node) and len(session.selected) == 1:
                    self._graph.snap_node(obj, SNAP_TO_PADDING)
            self._notify_change()

        if session.selection_target is not None:
            session.selection_target = mouse
            session.selection_rect = rect_from_points(session.original_click, mouse)
            session.selected = list(self._graph.rect_select(session.selection_rect))
            self.request_redraw()

    def end_drag(self, session: EditorSession) -> Optional[AnyLink]:
        """
        Pointer released.

        A dragged-out link that snapped to a node is committed and selected;
        a free-floating one is discarded.
        """
        session.moving_object = False
        committed = None

        if session.selection_target is not None:
            session.selection_target = None
            session.selection_rect = None
            self.request_redraw()

        if session.current_link is not None:
            link = session.current_link
            session.current_link = None
            if not isinstance(link, TemporaryLink):
                self._graph.add_link(link)
                session.select(link)
                session.reset_caret()
                committed = link
                self._notify_change()
            else:
                self.request_redraw()

        return committed

    def double_click(self, session: EditorSession, x: float, y: float) -> Optional[Entity]:
        """Create a node on empty canvas, or toggle the accept state of a node."""
        target = self._graph.hit_test(x, y)
        if target is None:
            node = self.create_node(x, y)
            session.select(node)
            session.reset_caret()
            return node

        session.select(target)
        if isinstance(target, Node):
            self.toggle_accept_state(target.id)
        else:
            self.request_redraw()
        return target

    # --- Keyboard ---

    def type_character(self, session: EditorSession, char: str) -> bool:
        """Append a printable ASCII character to the selected entity's label."""
        entity = session.primary
        if entity is None or len(char) != 1:
            return False
        if not PRINTABLE_FIRST <= ord(char) <= PRINTABLE_LAST:
            return False
        entity.text += char
        session.reset_caret()
        self._notify_change()
        return True

    def backspace(self, session: EditorSession) -> bool:
        entity = session.primary
        if entity is None:
            return False
        entity.text = entity.text[:-1]
        session.reset_caret()
        self._notify_change()
        return True

    def delete_selected(self, session: EditorSession) -> bool:
        """Delete the primary selection (cascading for nodes)."""
        entity = session.primary
        if entity is None:
            return False
        try:
            self.delete_entity(entity.id, session)
        except EntityNotFoundError:
            session.clear_selection()
            return False
        session.clear_selection()
        return True

    # --- Rendering ---

    def render(self, c, session: Optional[EditorSession] = None):
        """Run the redraw pass against any backend."""
        draw_graph(c, self._graph, session, self.canvas_width, self.canvas_height)

    def export_document(self) -> str:
        """Render the diagram, unselected, as a standalone SVG document."""
        exporter = SVGExporter(self.canvas_width, self.canvas_height)
        self.render(exporter)
        return exporter.to_svg()

    def export_raster_image(self) -> bytes:
        """Render the diagram, unselected, as PNG bytes."""
        backend = RasterBackend(self.canvas_width, self.canvas_height)
        self.render(backend)
        return backend.to_png()

    def get_state(self) -> dict:
        """Get the full current state for API responses."""
        return {
            "diagram": self._graph.to_json_dict(),
            "ids": {
                "nodes": [node.id for node in self._graph.nodes],
                "links": [link.id for link in self._graph.links],
            },
            "autosave_path": str(self._autosave_path) if self._autosave_path else None,
        }


# Global instance for the application
diagram_manager = DiagramManager(
    autosave_path=config.AUTOSAVE_PATH,
    canvas_width=config.CANVAS_WIDTH,
    canvas_height=config.CANVAS_HEIGHT,
)

"""
Graph store - the in-memory collection of nodes and links.

This module implements:
- An ordered node arena keyed by stable ids (O(1) lookups)
- Ordered links referencing nodes by id
- Cascade removal of links when their node goes away
- Front-to-back hit testing and rubber-band selection
- JSON encode/decode with positional node indices
- The redraw routine shared by every render backend

Creation order is z-order: drawing walks forward, hit testing walks
backward so the newest entity under the pointer wins.
"""

import json
import logging
from typing import TYPE_CHECKING, Any, Optional

from pydantic import ValidationError

from .geometry import Rect
from .models import AnyLink, Entity, Link, Node, SelfLink, StartLink, generate_node_id
from .serializer import (
    LINK_TYPES,
    DocumentRecord,
    LinkRecord,
    NodeRecord,
    SelfLinkRecord,
    StartLinkRecord,
    dump_record,
    link_record_adapter,
)

if TYPE_CHECKING:
    from .backends import RenderBackend
    from .session import EditorSession

logger = logging.getLogger(__name__)


SELECTED_COLOR = "blue"
DEFAULT_COLOR = "black"


class EntityNotFoundError(KeyError):
    """Raised when a node or link id does not resolve."""


class DuplicateEntityError(ValueError):
    """Raised when a node is added under an id already in the arena."""


class Graph:
    """
    Ordered nodes and links of one diagram.

    Links hold node ids; every id they hold must exist in the node arena.
    remove_node keeps that invariant by dropping dependent links.
    """

    def __init__(self):
        self._nodes: dict[str, Node] = {}  # insertion-ordered
        self._links: list[AnyLink] = []

    # --- Properties ---

    @property
    def nodes(self) -> list[Node]:
        return list(self._nodes.values())

    @property
    def links(self) -> list[AnyLink]:
        return list(self._links)

    def __len__(self) -> int:
        return len(self._nodes) + len(self._links)

    # --- Lookups ---

    def get_node(self, node_id: str) -> Node:
        """Get a node by ID (O(1) lookup)."""
        try:
            return self._nodes[node_id]
        except KeyError:
            raise EntityNotFoundError(f"Node not found: {node_id}") from None

    def get_link(self, link_id: str) -> AnyLink:
        for link in self._links:
            if link.id == link_id:
                return link
        raise EntityNotFoundError(f"Link not found: {link_id}")

    def get_entity(self, entity_id: str) -> Entity:
        """Resolve a node or link id."""
        if entity_id in self._nodes:
            return self._nodes[entity_id]
        return self.get_link(entity_id)

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    def links_for_node(self, node_id: str) -> list[AnyLink]:
        """All links that reference the node, in z-order."""
        return [link for link in self._links if link.references(node_id)]

    # --- Mutation ---

    def add_node(self, node: Node) -> Node:
        if node.id in self._nodes:
            raise DuplicateEntityError(f"Node id already in use: {node.id}")
        self._nodes[node.id] = node
        return node

    def add_link(self, link: AnyLink) -> AnyLink:
        """Append a link after checking that the nodes it references exist."""
        node_ids = (link.node_a, link.node_b) if isinstance(link, Link) else (link.node,)
        for node_id in node_ids:
            if node_id not in self._nodes:
                raise EntityNotFoundError(f"Link references missing node: {node_id}")
        self._links.append(link)
        return link

    def remove_node(self, node_id: str) -> list[AnyLink]:
        """
        Remove a node and every link attached to it.

        Returns:
            The links removed by the cascade
        """
        if self._nodes.pop(node_id, None) is None:
            raise EntityNotFoundError(f"Node not found: {node_id}")
        removed = self.links_for_node(node_id)
        self._links = [link for link in self._links if not link.references(node_id)]
        return removed

    def remove_link(self, link_id: str) -> AnyLink:
        link = self.get_link(link_id)
        self._links = [other for other in self._links if other is not link]
        return link

    def remove_entity(self, entity_id: str) -> None:
        if entity_id in self._nodes:
            self.remove_node(entity_id)
        else:
            self.remove_link(entity_id)

    def clear(self) -> None:
        self._nodes.clear()
        self._links.clear()

    def snap_node(self, node: Node, padding: float) -> None:
        """Align a dragged node with any other node within padding on each axis."""
        for other in self._nodes.values():
            if other is node:
                continue
            if abs(node.x - other.x) < padding:
                node.x = other.x
            if abs(node.y - other.y) < padding:
                node.y = other.y

    # --- Queries ---

    def hit_test(self, x: float, y: float) -> Optional[Entity]:
        """Topmost entity under the point: nodes first, then links, newest first."""
        for node in reversed(self._nodes.values()):
            if node.contains_point(self, x, y):
                return node
        for link in reversed(self._links):
            if link.contains_point(self, x, y):
                return link
        return None

    def rect_select(self, rect: Rect) -> list[Node]:
        """Nodes caught by a rubber-band rectangle (approximate test)."""
        return [node for node in self._nodes.values() if node.intersects_rect(rect)]

    # --- Serialization ---

    def to_json_dict(self) -> dict:
        """Encode to the persisted shape, remapping node ids to positions."""
        index = {node_id: i for i, node_id in enumerate(self._nodes)}
        nodes = [
            dump_record(NodeRecord(x=n.x, y=n.y, text=n.text, is_accept_state=n.is_accept_state))
            for n in self._nodes.values()
        ]
        links = []
        for link in self._links:
            if isinstance(link, SelfLink):
                record = SelfLinkRecord(type="SelfLink", node=index[link.node],
                                        text=link.text, anchor_angle=link.anchor_angle)
            elif isinstance(link, StartLink):
                record = StartLinkRecord(type="StartLink", node=index[link.node], text=link.text,
                                         delta_x=link.delta_x, delta_y=link.delta_y)
            else:
                record = LinkRecord(type="Link", node_a=index[link.node_a],
                                    node_b=index[link.node_b], text=link.text,
                                    line_angle_adjust=link.line_angle_adjust,
                                    parallel_part=link.parallel_part,
                                    perpendicular_part=link.perpendicular_part)
            links.append(dump_record(record))
        return {"nodes": nodes, "links": links}

    def to_json(self) -> str:
        return json.dumps(self.to_json_dict(), allow_nan=False)

    @classmethod
    def from_json_dict(cls, data: Any) -> "Graph":
        """
        Decode a persisted document.

        Nodes are rebuilt first so indices resolve. A link with an unknown
        type, an out-of-range index or bad fields is dropped on its own.
        A structurally invalid document yields an empty graph.
        """
        graph = cls()
        try:
            document = DocumentRecord.model_validate(data)
        except ValidationError as e:
            logger.warning("Discarding malformed diagram document: %s", e.error_count())
            return graph

        node_ids = []
        for n in document.nodes:
            node = Node(x=n.x, y=n.y, text=n.text, is_accept_state=n.is_accept_state)
            while graph.has_node(node.id):
                node.id = generate_node_id()
            node_ids.append(graph.add_node(node).id)

        def resolve(index: int) -> str:
            if not 0 <= index < len(node_ids):
                raise IndexError(f"node index {index} out of range")
            return node_ids[index]

        for position, raw in enumerate(document.links):
            if not isinstance(raw, dict):
                logger.warning("Dropping link %d: not an object (%r)", position, raw)
                continue
            if raw.get("type") not in LINK_TYPES:
                logger.warning("Dropping link %d with unknown type %r", position, raw.get("type"))
                continue
            try:
                record = link_record_adapter.validate_python(raw)
                if isinstance(record, SelfLinkRecord):
                    link = SelfLink(node=resolve(record.node), text=record.text,
                                    anchor_angle=record.anchor_angle)
                elif isinstance(record, StartLinkRecord):
                    link = StartLink(node=resolve(record.node), text=record.text,
                                     delta_x=record.delta_x, delta_y=record.delta_y)
                else:
                    link = Link(node_a=resolve(record.node_a), node_b=resolve(record.node_b),
                                text=record.text, line_angle_adjust=record.line_angle_adjust,
                                parallel_part=record.parallel_part,
                                perpendicular_part=record.perpendicular_part)
            except (ValidationError, IndexError) as e:
                logger.warning("Dropping link %d: %s", position, e)
                continue
            graph.add_link(link)

        return graph

    @classmethod
    def from_json(cls, text: str | bytes | None) -> "Graph":
        """Decode a JSON string; unparsable input gives an empty graph."""
        if not text:
            return cls()
        try:
            data = json.loads(text)
        except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as e:
            logger.warning("Discarding unparsable diagram document: %s", e)
            return cls()
        return cls.from_json_dict(data)


def draw_graph(c: "RenderBackend", graph: Graph, session: Optional["EditorSession"],
               width: int, height: int) -> None:
    """
    The single redraw pass used by every backend.

    Clears the surface, shifts by half a pixel for crisp 1px lines, then
    draws nodes, links, the link being dragged and the selection rectangle.
    A session of None draws nothing as selected (used for exports).
    """
    primary = session.primary if session else None
    show_caret = session.show_caret if session else False

    c.clear_rect(0, 0, width, height)
    c.save()
    c.translate(0.5, 0.5)

    for entity in [*graph.nodes, *graph.links]:
        selected = session is not None and session.is_selected(entity)
        c.line_width = 1
        c.fill_style = c.stroke_style = SELECTED_COLOR if selected else DEFAULT_COLOR
        entity.draw(c, graph, is_selected=entity is primary, show_caret=show_caret)

    if session is not None and session.current_link is not None:
        c.line_width = 1
        c.fill_style = c.stroke_style = DEFAULT_COLOR
        session.current_link.draw(c, graph)

    if session is not None and session.selection_rect is not None:
        rect = session.selection_rect
        c.stroke_style = SELECTED_COLOR
        c.stroke_rect(rect.x, rect.y, rect.width, rect.height)

    c.restore()

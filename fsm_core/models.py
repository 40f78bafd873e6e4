"""
Entity model for state-machine diagrams.

Four persisted kinds plus one transient kind:
- Node: a circular state, optionally an accept state (double ring)
- Link: a transition between two distinct nodes, straight or arced
- SelfLink: a loop leaving and re-entering the same node
- StartLink: the entry arrow marking the initial state
- TemporaryLink: the free-floating arrow shown while a link is dragged out

Links never store coordinates. They reference nodes by id and keep only
relative placement parameters, so moving a node reshapes every attached
link on the next redraw. Every geometric method therefore takes the graph
(anything with a get_node(node_id) method) used to resolve those ids.
"""

import logging
import math
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal, Optional, Protocol, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator

from .geometry import (
    DegenerateGeometryError,
    Point,
    Rect,
    circle_from_three_points,
    normalize_angle,
)
from .text import draw_text

if TYPE_CHECKING:
    from .backends import RenderBackend

logger = logging.getLogger(__name__)


NODE_RADIUS = 30
SNAP_TO_PADDING = 6  # pixels
HIT_TARGET_PADDING = 6  # pixels
ACCEPT_RING_INSET = 6  # pixels between the outer circle and the accept ring

SELF_LINK_OFFSET = 1.5  # loop center distance, in node radii
SELF_LINK_RADIUS = 0.75  # loop radius, in node radii
SELF_LINK_SPAN = 0.8 * math.pi  # half the visible sweep of the loop
RIGHT_ANGLE_SNAP = 0.1  # radians


def generate_node_id() -> str:
    """Generate a unique node ID."""
    return f"n{uuid.uuid4().hex[:8]}"


def generate_link_id() -> str:
    """Generate a unique link ID."""
    return f"e{uuid.uuid4().hex[:8]}"


class NodeLookup(Protocol):
    def get_node(self, node_id: str) -> "Node": ...


@dataclass
class EndPoints:
    """Resolved geometry of a link for the current node positions."""
    has_circle: bool
    start_x: float
    start_y: float
    end_x: float
    end_y: float
    start_angle: float = 0.0
    end_angle: float = 0.0
    circle_x: float = 0.0
    circle_y: float = 0.0
    circle_radius: float = 0.0
    reverse_scale: float = 1.0
    is_reversed: bool = False


def draw_arrow(c: "RenderBackend", x: float, y: float, angle: float) -> None:
    """Fill an arrowhead whose tip is at (x, y), pointing along angle."""
    dx = math.cos(angle)
    dy = math.sin(angle)
    c.begin_path()
    c.move_to(x, y)
    c.line_to(x - 8 * dx + 5 * dy, y - 8 * dy - 5 * dx)
    c.line_to(x - 8 * dx - 5 * dy, y - 8 * dy + 5 * dx)
    c.fill()


def segment_contains_point(start_x: float, start_y: float, end_x: float, end_y: float,
                           x: float, y: float) -> bool:
    """Hit test against a straight segment with the hit tolerance."""
    dx = end_x - start_x
    dy = end_y - start_y
    length = math.sqrt(dx * dx + dy * dy)
    if length == 0:
        return False
    percent = (dx * (x - start_x) + dy * (y - start_y)) / (length * length)
    distance = (dx * (y - start_y) - dy * (x - start_x)) / length
    return 0 < percent < 1 and abs(distance) < HIT_TARGET_PADDING


def arc_contains_point(stuff: EndPoints, x: float, y: float) -> bool:
    """
    Hit test against the visible part of an arc.

    First the radial distance to the circle must be within tolerance, then
    the polar angle of the point must fall inside the swept span.
    """
    dx = x - stuff.circle_x
    dy = y - stuff.circle_y
    distance = math.sqrt(dx * dx + dy * dy) - stuff.circle_radius
    if abs(distance) >= HIT_TARGET_PADDING:
        return False

    angle = math.atan2(dy, dx)
    start_angle = stuff.start_angle
    end_angle = stuff.end_angle
    if stuff.is_reversed:
        start_angle, end_angle = end_angle, start_angle
    if end_angle < start_angle:
        end_angle += 2 * math.pi
    if angle < start_angle:
        angle += 2 * math.pi
    elif angle > end_angle:
        angle -= 2 * math.pi
    return start_angle < angle < end_angle


# --- Nodes ---

class Node(BaseModel):
    """A state in the diagram."""
    model_config = ConfigDict(allow_inf_nan=False)

    id: str = Field(default_factory=generate_node_id)
    x: float = 0
    y: float = 0
    text: str = ""
    is_accept_state: bool = False

    _mouse_offset_x: float = PrivateAttr(default=0.0)
    _mouse_offset_y: float = PrivateAttr(default=0.0)

    def set_mouse_start(self, graph: Optional[NodeLookup], x: float, y: float) -> None:
        """Remember where inside the node the drag grabbed it."""
        self._mouse_offset_x = self.x - x
        self._mouse_offset_y = self.y - y

    def set_anchor_point(self, graph: Optional[NodeLookup], x: float, y: float) -> None:
        """Move the node so the grabbed point follows the pointer."""
        self.x = x + self._mouse_offset_x
        self.y = y + self._mouse_offset_y

    def closest_point_on_circle(self, x: float, y: float) -> Point:
        """
        The point on the node's rim nearest to (x, y).

        Returns the center itself when (x, y) is exactly the center.
        """
        dx = x - self.x
        dy = y - self.y
        scale = math.sqrt(dx * dx + dy * dy)
        if scale == 0:
            return Point(self.x, self.y)
        return Point(self.x + dx * NODE_RADIUS / scale, self.y + dy * NODE_RADIUS / scale)

    def contains_point(self, graph: Optional[NodeLookup], x: float, y: float) -> bool:
        return (x - self.x) ** 2 + (y - self.y) ** 2 < NODE_RADIUS * NODE_RADIUS

    def intersects_rect(self, rect: Rect) -> bool:
        """
        Approximate rubber-band test.

        Only the rim point facing the rectangle's center is checked, not the
        full circle/rectangle overlap.
        """
        center = rect.center()
        outer = self.closest_point_on_circle(center.x, center.y)
        return (
            rect.x <= outer.x < rect.x + rect.width
            and rect.y <= outer.y < rect.y + rect.height
        )

    def draw(self, c: "RenderBackend", graph: Optional[NodeLookup] = None,
             is_selected: bool = False, show_caret: bool = False) -> None:
        c.begin_path()
        c.arc(self.x, self.y, NODE_RADIUS, 0, 2 * math.pi, False)
        c.stroke()

        draw_text(c, self.text, self.x, self.y, None, is_selected, show_caret)

        if self.is_accept_state:
            c.begin_path()
            c.arc(self.x, self.y, NODE_RADIUS - ACCEPT_RING_INSET, 0, 2 * math.pi, False)
            c.stroke()


# --- Links ---

class Link(BaseModel):
    """
    A transition between two distinct nodes.

    The anchor (the point the user dragged) is stored relative to the A->B
    axis: parallel_part is its projection as a fraction of |AB| and
    perpendicular_part its signed distance from the line, in pixels.
    """
    model_config = ConfigDict(allow_inf_nan=False)

    type: Literal["Link"] = "Link"
    id: str = Field(default_factory=generate_link_id)
    node_a: str
    node_b: str
    text: str = ""
    # Added to the label angle when the link is straight, so the label
    # stays on the side the user dragged from
    line_angle_adjust: float = 0
    parallel_part: float = 0.5
    perpendicular_part: float = 0

    @model_validator(mode="after")
    def check_distinct_nodes(self) -> "Link":
        if self.node_a == self.node_b:
            raise ValueError("A Link must join two distinct nodes; use SelfLink for loops")
        return self

    def _nodes(self, graph: NodeLookup) -> tuple[Node, Node]:
        return graph.get_node(self.node_a), graph.get_node(self.node_b)

    def set_mouse_start(self, graph: NodeLookup, x: float, y: float) -> None:
        pass

    def get_anchor_point(self, graph: NodeLookup) -> Point:
        a, b = self._nodes(graph)
        dx = b.x - a.x
        dy = b.y - a.y
        scale = math.sqrt(dx * dx + dy * dy)
        if scale == 0:
            return Point(a.x, a.y)
        return Point(
            a.x + dx * self.parallel_part - dy * self.perpendicular_part / scale,
            a.y + dy * self.parallel_part + dx * self.perpendicular_part / scale,
        )

    def set_anchor_point(self, graph: NodeLookup, x: float, y: float) -> None:
        a, b = self._nodes(graph)
        dx = b.x - a.x
        dy = b.y - a.y
        scale = math.sqrt(dx * dx + dy * dy)
        if scale == 0:
            return
        self.parallel_part = (dx * (x - a.x) + dy * (y - a.y)) / (scale * scale)
        self.perpendicular_part = (dx * (y - a.y) - dy * (x - a.x)) / scale

        # Snap to a straight line
        if 0 < self.parallel_part < 1 and abs(self.perpendicular_part) < SNAP_TO_PADDING:
            self.line_angle_adjust = math.pi if self.perpendicular_part < 0 else 0
            self.perpendicular_part = 0

    def _straight_end_points(self, a: Node, b: Node) -> EndPoints:
        mid_x = (a.x + b.x) / 2
        mid_y = (a.y + b.y) / 2
        start = a.closest_point_on_circle(mid_x, mid_y)
        end = b.closest_point_on_circle(mid_x, mid_y)
        return EndPoints(has_circle=False, start_x=start.x, start_y=start.y,
                         end_x=end.x, end_y=end.y)

    def get_end_points_and_circle(self, graph: NodeLookup) -> EndPoints:
        a, b = self._nodes(graph)
        if self.perpendicular_part == 0:
            return self._straight_end_points(a, b)

        anchor = self.get_anchor_point(graph)
        try:
            circle = circle_from_three_points(Point(a.x, a.y), Point(b.x, b.y), anchor)
        except DegenerateGeometryError:
            logger.debug("Link %s has a degenerate arc; drawing it straight", self.id)
            return self._straight_end_points(a, b)

        is_reversed = self.perpendicular_part > 0
        reverse_scale = 1 if is_reversed else -1
        start_angle = (math.atan2(a.y - circle.y, a.x - circle.x)
                       - reverse_scale * NODE_RADIUS / circle.radius)
        end_angle = (math.atan2(b.y - circle.y, b.x - circle.x)
                     + reverse_scale * NODE_RADIUS / circle.radius)
        return EndPoints(
            has_circle=True,
            start_x=circle.x + circle.radius * math.cos(start_angle),
            start_y=circle.y + circle.radius * math.sin(start_angle),
            end_x=circle.x + circle.radius * math.cos(end_angle),
            end_y=circle.y + circle.radius * math.sin(end_angle),
            start_angle=start_angle,
            end_angle=end_angle,
            circle_x=circle.x,
            circle_y=circle.y,
            circle_radius=circle.radius,
            reverse_scale=reverse_scale,
            is_reversed=is_reversed,
        )

    def draw(self, c: "RenderBackend", graph: NodeLookup,
             is_selected: bool = False, show_caret: bool = False) -> None:
        stuff = self.get_end_points_and_circle(graph)

        c.begin_path()
        if stuff.has_circle:
            c.arc(stuff.circle_x, stuff.circle_y, stuff.circle_radius,
                  stuff.start_angle, stuff.end_angle, stuff.is_reversed)
        else:
            c.move_to(stuff.start_x, stuff.start_y)
            c.line_to(stuff.end_x, stuff.end_y)
        c.stroke()

        if stuff.has_circle:
            draw_arrow(c, stuff.end_x, stuff.end_y,
                       stuff.end_angle - stuff.reverse_scale * (math.pi / 2))
        else:
            draw_arrow(c, stuff.end_x, stuff.end_y,
                       math.atan2(stuff.end_y - stuff.start_y, stuff.end_x - stuff.start_x))

        if stuff.has_circle:
            start_angle = stuff.start_angle
            end_angle = stuff.end_angle
            if end_angle < start_angle:
                end_angle += 2 * math.pi
            text_angle = (start_angle + end_angle) / 2 + (math.pi if stuff.is_reversed else 0)
            text_x = stuff.circle_x + stuff.circle_radius * math.cos(text_angle)
            text_y = stuff.circle_y + stuff.circle_radius * math.sin(text_angle)
            draw_text(c, self.text, text_x, text_y, text_angle, is_selected, show_caret)
        else:
            text_x = (stuff.start_x + stuff.end_x) / 2
            text_y = (stuff.start_y + stuff.end_y) / 2
            text_angle = math.atan2(stuff.end_x - stuff.start_x, stuff.start_y - stuff.end_y)
            draw_text(c, self.text, text_x, text_y, text_angle + self.line_angle_adjust,
                      is_selected, show_caret)

    def contains_point(self, graph: NodeLookup, x: float, y: float) -> bool:
        stuff = self.get_end_points_and_circle(graph)
        if stuff.has_circle:
            return arc_contains_point(stuff, x, y)
        return segment_contains_point(stuff.start_x, stuff.start_y, stuff.end_x, stuff.end_y, x, y)

    def references(self, node_id: str) -> bool:
        return node_id in (self.node_a, self.node_b)


class SelfLink(BaseModel):
    """A loop from a node back to itself, placed around the node by anchor_angle."""
    model_config = ConfigDict(allow_inf_nan=False)

    type: Literal["SelfLink"] = "SelfLink"
    id: str = Field(default_factory=generate_link_id)
    node: str
    text: str = ""
    anchor_angle: float = 0

    _mouse_offset_angle: float = PrivateAttr(default=0.0)

    def set_mouse_start(self, graph: NodeLookup, x: float, y: float) -> None:
        node = graph.get_node(self.node)
        self._mouse_offset_angle = self.anchor_angle - math.atan2(y - node.y, x - node.x)

    def set_anchor_point(self, graph: NodeLookup, x: float, y: float) -> None:
        node = graph.get_node(self.node)
        self.anchor_angle = math.atan2(y - node.y, x - node.x) + self._mouse_offset_angle

        # Snap to 90 degrees
        snap = round(self.anchor_angle / (math.pi / 2)) * (math.pi / 2)
        if abs(self.anchor_angle - snap) < RIGHT_ANGLE_SNAP:
            self.anchor_angle = snap

        # Keep in (-pi, pi] so contains_point's angle math holds
        self.anchor_angle = normalize_angle(self.anchor_angle)

    def get_end_points_and_circle(self, graph: NodeLookup) -> EndPoints:
        node = graph.get_node(self.node)
        circle_x = node.x + SELF_LINK_OFFSET * NODE_RADIUS * math.cos(self.anchor_angle)
        circle_y = node.y + SELF_LINK_OFFSET * NODE_RADIUS * math.sin(self.anchor_angle)
        circle_radius = SELF_LINK_RADIUS * NODE_RADIUS
        start_angle = self.anchor_angle - SELF_LINK_SPAN
        end_angle = self.anchor_angle + SELF_LINK_SPAN
        return EndPoints(
            has_circle=True,
            start_x=circle_x + circle_radius * math.cos(start_angle),
            start_y=circle_y + circle_radius * math.sin(start_angle),
            end_x=circle_x + circle_radius * math.cos(end_angle),
            end_y=circle_y + circle_radius * math.sin(end_angle),
            start_angle=start_angle,
            end_angle=end_angle,
            circle_x=circle_x,
            circle_y=circle_y,
            circle_radius=circle_radius,
        )

    def draw(self, c: "RenderBackend", graph: NodeLookup,
             is_selected: bool = False, show_caret: bool = False) -> None:
        stuff = self.get_end_points_and_circle(graph)

        c.begin_path()
        c.arc(stuff.circle_x, stuff.circle_y, stuff.circle_radius,
              stuff.start_angle, stuff.end_angle, False)
        c.stroke()

        # Label on the far side of the loop
        text_x = stuff.circle_x + stuff.circle_radius * math.cos(self.anchor_angle)
        text_y = stuff.circle_y + stuff.circle_radius * math.sin(self.anchor_angle)
        draw_text(c, self.text, text_x, text_y, self.anchor_angle, is_selected, show_caret)

        draw_arrow(c, stuff.end_x, stuff.end_y, stuff.end_angle + math.pi * 0.4)

    def contains_point(self, graph: NodeLookup, x: float, y: float) -> bool:
        stuff = self.get_end_points_and_circle(graph)
        dx = x - stuff.circle_x
        dy = y - stuff.circle_y
        distance = math.sqrt(dx * dx + dy * dy) - stuff.circle_radius
        return abs(distance) < HIT_TARGET_PADDING

    def references(self, node_id: str) -> bool:
        return self.node == node_id


class StartLink(BaseModel):
    """The initial-state marker: an arrow from a free anchor into a node."""
    model_config = ConfigDict(allow_inf_nan=False)

    type: Literal["StartLink"] = "StartLink"
    id: str = Field(default_factory=generate_link_id)
    node: str
    text: str = ""
    delta_x: float = 0
    delta_y: float = 0

    def set_mouse_start(self, graph: NodeLookup, x: float, y: float) -> None:
        pass

    def set_anchor_point(self, graph: NodeLookup, x: float, y: float) -> None:
        node = graph.get_node(self.node)
        self.delta_x = x - node.x
        self.delta_y = y - node.y

        if abs(self.delta_x) < SNAP_TO_PADDING:
            self.delta_x = 0
        if abs(self.delta_y) < SNAP_TO_PADDING:
            self.delta_y = 0

    def get_end_points(self, graph: NodeLookup) -> EndPoints:
        node = graph.get_node(self.node)
        start_x = node.x + self.delta_x
        start_y = node.y + self.delta_y
        end = node.closest_point_on_circle(start_x, start_y)
        return EndPoints(has_circle=False, start_x=start_x, start_y=start_y,
                         end_x=end.x, end_y=end.y)

    def draw(self, c: "RenderBackend", graph: NodeLookup,
             is_selected: bool = False, show_caret: bool = False) -> None:
        stuff = self.get_end_points(graph)

        c.begin_path()
        c.move_to(stuff.start_x, stuff.start_y)
        c.line_to(stuff.end_x, stuff.end_y)
        c.stroke()

        # Label at the free end, away from the node
        text_angle = math.atan2(stuff.start_y - stuff.end_y, stuff.start_x - stuff.end_x)
        draw_text(c, self.text, stuff.start_x, stuff.start_y, text_angle, is_selected, show_caret)

        draw_arrow(c, stuff.end_x, stuff.end_y, math.atan2(-self.delta_y, -self.delta_x))

    def contains_point(self, graph: NodeLookup, x: float, y: float) -> bool:
        stuff = self.get_end_points(graph)
        return segment_contains_point(stuff.start_x, stuff.start_y, stuff.end_x, stuff.end_y, x, y)

    def references(self, node_id: str) -> bool:
        return self.node == node_id


@dataclass
class TemporaryLink:
    """Arrow shown while a new link is dragged out; never stored in the graph."""
    start: Point
    end: Point

    def draw(self, c: "RenderBackend", graph: Optional[NodeLookup] = None,
             is_selected: bool = False, show_caret: bool = False) -> None:
        c.begin_path()
        c.move_to(self.end.x, self.end.y)
        c.line_to(self.start.x, self.start.y)
        c.stroke()

        draw_arrow(c, self.end.x, self.end.y,
                   math.atan2(self.end.y - self.start.y, self.end.x - self.start.x))

    def contains_point(self, graph: Optional[NodeLookup], x: float, y: float) -> bool:
        return segment_contains_point(self.start.x, self.start.y, self.end.x, self.end.y, x, y)


AnyLink = Union[Link, SelfLink, StartLink]
DragLink = Union[Link, SelfLink, StartLink, TemporaryLink]
Entity = Union[Node, Link, SelfLink, StartLink]

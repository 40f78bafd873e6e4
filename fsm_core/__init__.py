"""
FSM Designer Core - geometry, entities, text layout, rendering and storage.

This package holds every piece of diagram logic; the service layer in
fsm_backend only calls into it.
"""

from .geometry import (
    Point,
    Rect,
    Circle,
    DegenerateGeometryError,
    circle_from_three_points,
    rect_from_points,
)
from .models import (
    # Constants
    NODE_RADIUS,
    SNAP_TO_PADDING,
    HIT_TARGET_PADDING,
    # Entities
    Node,
    Link,
    SelfLink,
    StartLink,
    TemporaryLink,
    EndPoints,
)
from .text import convert_latex_shortcuts, layout_text, draw_text, caret_position
from .backends import RenderBackend, RasterBackend, SVGExporter
from .graph import Graph, EntityNotFoundError, DuplicateEntityError, draw_graph
from .session import EditorSession

__all__ = [
    # Geometry
    "Point",
    "Rect",
    "Circle",
    "DegenerateGeometryError",
    "circle_from_three_points",
    "rect_from_points",
    # Constants
    "NODE_RADIUS",
    "SNAP_TO_PADDING",
    "HIT_TARGET_PADDING",
    # Entities
    "Node",
    "Link",
    "SelfLink",
    "StartLink",
    "TemporaryLink",
    "EndPoints",
    # Text
    "convert_latex_shortcuts",
    "layout_text",
    "draw_text",
    "caret_position",
    # Rendering
    "RenderBackend",
    "RasterBackend",
    "SVGExporter",
    "draw_graph",
    # Storage
    "Graph",
    "EntityNotFoundError",
    "DuplicateEntityError",
    # Editing
    "EditorSession",
]

"""
Pydantic request models for the HTTP API.

Coordinates are canvas units, the same space the editor draws in.
"""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from fsm_core.models import Entity, Node


class CanvasRequest(BaseModel):
    """Base for bodies carrying canvas coordinates; NaN and infinities are rejected."""
    model_config = ConfigDict(allow_inf_nan=False)


class CreateNodeRequest(CanvasRequest):
    """Request to create a new node."""
    x: float
    y: float
    text: str = ""


class UpdateEntityRequest(CanvasRequest):
    """Request to update an existing node or link (partial update)."""
    text: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None


class PointerRequest(CanvasRequest):
    """A pointer event at canvas coordinates."""
    x: float
    y: float
    shift: bool = False
    ctrl: bool = False


class RectSelectRequest(CanvasRequest):
    """Two opposite corners of a rubber-band rectangle."""
    x1: float
    y1: float
    x2: float
    y2: float


class TypeRequest(BaseModel):
    """Characters typed while the canvas has focus."""
    text: str = Field(min_length=1)


class SessionStateRequest(BaseModel):
    """Caret timer / focus inputs for the server-side session."""
    caret_visible: Optional[bool] = None
    has_focus: Optional[bool] = None


def entity_to_dict(entity: Entity) -> dict:
    """Serialize an entity with its id and kind for API responses."""
    kind = "Node" if isinstance(entity, Node) else entity.type
    return {"kind": kind, **entity.model_dump()}

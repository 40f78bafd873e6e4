"""
Editor session - the interaction state owned by the caller.

Selection, the link being dragged out, the move flag and the rubber-band
rectangle all live here instead of in module globals. The UI collaborator
keeps one EditorSession and passes it into every editor operation.
"""

from dataclasses import dataclass, field
from typing import Optional

from .geometry import Point, Rect
from .models import DragLink, Entity


@dataclass
class EditorSession:
    """Per-view interaction state."""
    selected: list[Entity] = field(default_factory=list)
    current_link: Optional[DragLink] = None
    moving_object: bool = False
    original_click: Optional[Point] = None
    selection_target: Optional[Point] = None
    selection_rect: Optional[Rect] = None
    # Inputs from the excluded caret timer / focus tracking
    caret_visible: bool = True
    has_focus: bool = True

    @property
    def primary(self) -> Optional[Entity]:
        """The most recently selected entity, which receives typed text."""
        return self.selected[-1] if self.selected else None

    @property
    def show_caret(self) -> bool:
        return self.caret_visible and self.has_focus

    def is_selected(self, entity) -> bool:
        return any(entity is other for other in self.selected)

    def select(self, *entities: Entity) -> None:
        self.selected = list(entities)

    def clear_selection(self) -> None:
        self.selected = []

    def reset_caret(self) -> None:
        self.caret_visible = True

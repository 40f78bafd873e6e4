"""
JSON record shapes for the persisted graph.

This is the only persistence format (auto-save snapshot and import/export):

    {"nodes": [{"x", "y", "text", "isAcceptState"}, ...],
     "links": [{"type": "SelfLink", "node", "text", "anchorAngle"},
               {"type": "StartLink", "node", "text", "deltaX", "deltaY"},
               {"type": "Link", "nodeA", "nodeB", "text", "lineAngleAdjust",
                "parallelPart", "perpendicularPart"}]}

Node references are positional indices into "nodes" as emitted. There is
no version field. Mapping between indices and node ids happens in
fsm_core.graph; this module only validates individual records.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", allow_inf_nan=False)


class NodeRecord(_Record):
    """A serialized node."""
    x: float
    y: float
    text: str = ""
    is_accept_state: bool = Field(default=False, alias="isAcceptState")


class SelfLinkRecord(_Record):
    type: Literal["SelfLink"]
    node: int
    text: str = ""
    anchor_angle: float = Field(default=0, alias="anchorAngle")


class StartLinkRecord(_Record):
    type: Literal["StartLink"]
    node: int
    text: str = ""
    delta_x: float = Field(default=0, alias="deltaX")
    delta_y: float = Field(default=0, alias="deltaY")


class LinkRecord(_Record):
    type: Literal["Link"]
    node_a: int = Field(alias="nodeA")
    node_b: int = Field(alias="nodeB")
    text: str = ""
    line_angle_adjust: float = Field(default=0, alias="lineAngleAdjust")
    parallel_part: float = Field(default=0.5, alias="parallelPart")
    perpendicular_part: float = Field(default=0, alias="perpendicularPart")


AnyLinkRecord = Annotated[
    Union[SelfLinkRecord, StartLinkRecord, LinkRecord],
    Field(discriminator="type"),
]

LINK_TYPES = ("SelfLink", "StartLink", "Link")

link_record_adapter: TypeAdapter[Any] = TypeAdapter(AnyLinkRecord)


class DocumentRecord(_Record):
    """
    Top-level document shape.

    Links are kept as raw values so a single bad link can be dropped
    without rejecting the whole document.
    """
    nodes: list[NodeRecord] = Field(default_factory=list)
    links: list[Any] = Field(default_factory=list)


def dump_record(record: BaseModel) -> dict:
    """Serialize a record with its camelCase wire names."""
    return record.model_dump(by_alias=True)

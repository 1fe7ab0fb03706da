"""
Graph CRDT Replica Settings

Settings come from the environment:
  GRAPH_CRDT_REPLICA_ID   replica identity, used by the HLC tiebreak
  GRAPH_CRDT_CLOCK        "wall" (default) or "hlc"
"""

import os
import uuid
from typing import Literal, Optional

from pydantic import BaseModel, Field

from graph_crdt.crdt.clock import Clock, HybridLogicalClock, wall_clock


class ReplicaSettings(BaseModel):
    replica_id: str = Field(default_factory=lambda: uuid.uuid4().hex, min_length=1)
    clock: Literal["wall", "hlc"] = "wall"


def load_settings(environ: Optional[dict] = None) -> ReplicaSettings:
    """Build settings from environment variables.

    Raises pydantic.ValidationError on an unknown clock name.
    """
    if environ is None:
        environ = dict(os.environ)
    values = {}
    replica_id = environ.get("GRAPH_CRDT_REPLICA_ID")
    if replica_id:
        values["replica_id"] = replica_id
    clock = environ.get("GRAPH_CRDT_CLOCK")
    if clock:
        values["clock"] = clock.strip().lower()
    return ReplicaSettings(**values)


def make_clock(settings: ReplicaSettings) -> Clock:
    if settings.clock == "hlc":
        return HybridLogicalClock(settings.replica_id)
    return wall_clock

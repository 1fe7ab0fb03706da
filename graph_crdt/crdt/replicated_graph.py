"""
Graph CRDT Replicated Graph

A state-based CRDT directed graph. Two two-phase sets (nodes, edges)
are the source of truth; the DirectedGraph is a derived cache that can
be thrown away and rebuilt from the sets at any time.

Local mutations go graph first, then set: the graph decides whether the
mutation is a no-op, and only real changes are recorded. Merges go the
other way: sets are joined, then the graph is regenerated from scratch.

Visibility rule (add-wins, strict-timestamp tombstones): an element is
present iff it has an add record and no remove record strictly later
than it. Edges additionally need both endpoints present.
"""

import logging
from typing import Optional
from uuid import UUID

from graph_crdt.core.config import ReplicaSettings, load_settings, make_clock
from graph_crdt.crdt.clock import Clock, HLCTimestamp, HybridLogicalClock, wall_clock
from graph_crdt.crdt.two_phase_set import (
    NotObservedError, TwoPhaseSet, check_same_kind, survives,
)
from graph_crdt.graph.backend import DirectedGraph, Edge, Node


logger = logging.getLogger(__name__)


class ReplicatedGraph:
    """One replica of the graph.

    Not thread-safe: callers sharing a replica across threads must hold
    a lock around every mutation and merge.
    """

    def __init__(self, clock: Optional[Clock] = None,
                 settings: Optional[ReplicaSettings] = None):
        self.settings = settings or load_settings()
        self.clock = clock if clock is not None else make_clock(self.settings)
        self.node_set = TwoPhaseSet(self.clock)
        self.edge_set = TwoPhaseSet(self.clock)
        self.graph = DirectedGraph()

    # --------------------------------------------------------
    # Local mutations
    # --------------------------------------------------------

    def add_node(self, node: Node) -> bool:
        """Add a node. A repeated local add of the same id is dropped."""
        if not self.graph.add_node(node):
            logger.debug("Node %s already present, add dropped", node.id)
            return False
        self.node_set.add(node.id, self.graph.get_node(node.id).payload)
        logger.debug("Added node %s", node.id)
        return True

    def add_edge(self, edge: Edge) -> bool:
        """Add an edge. Both endpoints must already be present here."""
        if not self.graph.add_edge(edge):
            logger.debug("Edge %s rejected (duplicate or missing endpoint)", edge.id)
            return False
        self.edge_set.add(edge.id, edge)
        logger.debug("Added edge %s: %s -> %s", edge.id, edge.source_id, edge.target_id)
        return True

    def remove_node(self, node: Node) -> bool:
        """Remove a node and, with it, every incident edge.

        If the node set has no add record to tombstone, the graph is put
        back exactly as it was and False is returned.
        """
        current = self.graph.get_node(node.id)
        detached = self.graph.detach_node(node)
        if detached is None:
            return False
        try:
            self.node_set.remove(node.id)
        except NotObservedError as e:
            logger.warning("Rolling back node removal: %s", e)
            self.graph.add_node(current)
            for edge in detached:
                self.graph.add_edge(edge)
            return False
        logger.debug("Removed node %s (%d incident edges detached)", node.id, len(detached))
        return True

    def remove_edge(self, edge: Edge) -> bool:
        source = self.graph.get_node(edge.source_id)
        stored = source.edges.get(edge.id) if source is not None else None
        if not self.graph.remove_edge(edge):
            return False
        try:
            self.edge_set.remove(edge.id)
        except NotObservedError as e:
            logger.warning("Rolling back edge removal: %s", e)
            self.graph.add_edge(stored)
            return False
        logger.debug("Removed edge %s", edge.id)
        return True

    # --------------------------------------------------------
    # Reconciliation
    # --------------------------------------------------------

    def merge(self, other: 'ReplicatedGraph') -> 'ReplicatedGraph':
        """Join another replica's sets into this one and rebuild the graph.

        Idempotent: merging a state already included changes nothing.
        Raises TypeError before touching anything if the replicas stamp
        their records with different clock kinds.
        """
        kinds = (self.node_set.timestamp_kinds() | self.edge_set.timestamp_kinds()
                 | other.node_set.timestamp_kinds() | other.edge_set.timestamp_kinds())
        if isinstance(self.clock, HybridLogicalClock):
            kinds.add("hlc")
        elif self.clock is wall_clock:
            kinds.add("wall")
        check_same_kind(kinds)

        self.node_set.merge(other.node_set)
        self.edge_set.merge(other.edge_set)
        if isinstance(self.clock, HybridLogicalClock):
            self._observe_merged()
        self.regenerate_graph()
        return self

    def regenerate_graph(self) -> None:
        """Rebuild the derived graph from the node and edge sets.

        Nodes are materialized before edges so that edge insertion can
        check both endpoints; an edge with a missing endpoint is dropped
        even if the edge itself was never removed.
        """
        rebuilt = DirectedGraph()

        removed_nodes = self.node_set.get_remove_set()
        for node_id, added in self.node_set.get_add_set().items():
            if not survives(added, removed_nodes.get(node_id)):
                continue
            rebuilt.add_node(Node(id=node_id, payload=added.payload))

        dropped = 0
        removed_edges = self.edge_set.get_remove_set()
        for edge_id, added in self.edge_set.get_add_set().items():
            if not survives(added, removed_edges.get(edge_id)):
                continue
            if not rebuilt.add_edge(added.payload):
                dropped += 1

        self.graph = rebuilt
        logger.debug("Regenerated graph: %d nodes, %d edges (%d dangling dropped)",
                     rebuilt.node_count, rebuilt.edge_count, dropped)

    def _observe_merged(self) -> None:
        """Move the HLC past every timestamp now held in the sets."""
        for records in (self.node_set.get_add_set(), self.node_set.get_remove_set(),
                        self.edge_set.get_add_set(), self.edge_set.get_remove_set()):
            for record in records.values():
                if isinstance(record.timestamp, HLCTimestamp):
                    self.clock.observe(record.timestamp)

    # --------------------------------------------------------
    # Queries
    # --------------------------------------------------------

    def node_exists(self, node: Node) -> bool:
        return self.graph.node_exists(node)

    def edge_exists(self, edge: Edge) -> bool:
        return self.graph.edge_exists(edge)

    def get_node(self, node_id: UUID) -> Optional[Node]:
        return self.graph.get_node(node_id)

    def find_path(self, start: Node, end: Node) -> list[Node]:
        return self.graph.find_path(start, end)

    def state_hash(self) -> str:
        return self.graph.compute_state_hash()

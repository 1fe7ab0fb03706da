"""
Graph CRDT In-Memory Directed Graph

The plain, non-replicated graph that ReplicatedGraph materializes from
its sets. Nodes own their outgoing edges. Edges refer to their
endpoints by id, so the graph is an arena of nodes keyed by id.

Nodes have: id, payload, outgoing edges
Edges have: id, source_id, target_id

Structural no-ops (duplicate add, missing node, dangling edge) return
False rather than raising.
"""

import hashlib
from dataclasses import dataclass, field
from typing import Optional
from uuid import UUID


@dataclass(frozen=True)
class Edge:
    """A directed edge. Carries no payload."""
    id: UUID
    source_id: UUID
    target_id: UUID


@dataclass
class Node:
    """A node with an opaque byte payload."""
    id: UUID
    payload: bytes = b""
    edges: dict[UUID, Edge] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        # payloads are opaque bytes; copy so callers cannot mutate them later
        if not isinstance(self.payload, (bytes, bytearray, memoryview)):
            raise TypeError(
                f"node payload must be bytes, not {type(self.payload).__name__}")
        self.payload = bytes(self.payload)

    def __hash__(self):
        return hash(self.id)

    def __eq__(self, other):
        if not isinstance(other, Node):
            return False
        return self.id == other.id


class DirectedGraph:
    """In-memory directed graph.

    Every edge stored under a node has both endpoints present in the
    graph; add_edge refuses anything else and remove_node cascades.
    """

    def __init__(self):
        self._nodes: dict[UUID, Node] = {}

    # --------------------------------------------------------
    # Node operations
    # --------------------------------------------------------

    def add_node(self, node: Node) -> bool:
        """Insert a node. False if the id is already present.

        The graph keeps its own Node; edges must be added with add_edge.
        """
        if node.id in self._nodes:
            return False
        self._nodes[node.id] = Node(id=node.id, payload=node.payload)
        return True

    def remove_node(self, node: Node) -> bool:
        """Remove a node, its outgoing edges and every edge into it."""
        return self.detach_node(node) is not None

    def detach_node(self, node: Node) -> Optional[list[Edge]]:
        """Remove a node and return every edge that went with it.

        Outgoing edges come first, then incoming ones from other nodes.
        None if the node is absent.
        """
        removed = self._nodes.pop(node.id, None)
        if removed is None:
            return None
        detached = list(removed.edges.values())
        for other in self._nodes.values():
            for eid, edge in list(other.edges.items()):
                if edge.target_id == node.id:
                    del other.edges[eid]
                    detached.append(edge)
        return detached

    def node_exists(self, node: Node) -> bool:
        return node.id in self._nodes

    def get_node(self, node_id: UUID) -> Optional[Node]:
        return self._nodes.get(node_id)

    @property
    def nodes(self) -> list[Node]:
        return list(self._nodes.values())

    # --------------------------------------------------------
    # Edge operations
    # --------------------------------------------------------

    def add_edge(self, edge: Edge) -> bool:
        """Insert an edge under its source node.

        False if it already exists or either endpoint is missing.
        """
        source = self._nodes.get(edge.source_id)
        if source is None or edge.target_id not in self._nodes:
            return False
        if edge.id in source.edges:
            return False
        source.edges[edge.id] = edge
        return True

    def remove_edge(self, edge: Edge) -> bool:
        source = self._nodes.get(edge.source_id)
        if source is None or edge.id not in source.edges:
            return False
        del source.edges[edge.id]
        return True

    def edge_exists(self, edge: Edge) -> bool:
        """Keyed by edge id under the edge's recorded source node."""
        source = self._nodes.get(edge.source_id)
        return source is not None and edge.id in source.edges

    def get_edge(self, edge_id: UUID) -> Optional[Edge]:
        for node in self._nodes.values():
            edge = node.edges.get(edge_id)
            if edge is not None:
                return edge
        return None

    def get_outgoing(self, node_id: UUID) -> list[Edge]:
        node = self._nodes.get(node_id)
        if node is None:
            return []
        return list(node.edges.values())

    def get_incoming(self, node_id: UUID) -> list[Edge]:
        results = []
        for node in self._nodes.values():
            for edge in node.edges.values():
                if edge.target_id == node_id:
                    results.append(edge)
        return results

    def get_neighbors(self, node_id: UUID) -> list[Node]:
        """Targets of a node's outgoing edges."""
        return [self._nodes[e.target_id] for e in self.get_outgoing(node_id)]

    # --------------------------------------------------------
    # Traversal
    # --------------------------------------------------------

    def find_path(self, start: Node, end: Node) -> list[Node]:
        """Depth-first search for a path from start to end.

        Returns the first path found, both endpoints included, or []
        when either endpoint is missing or end is unreachable. Each node
        is visited at most once so cycles terminate.
        """
        if start.id not in self._nodes or end.id not in self._nodes:
            return []

        first = self._nodes[start.id]
        if start.id == end.id:
            return [first]

        path = [first]
        visited = {start.id}
        # one edge iterator per node on the current path
        stack = [iter(list(first.edges.values()))]

        while stack:
            edge = next(stack[-1], None)
            if edge is None:
                stack.pop()
                path.pop()
                continue
            if edge.target_id in visited:
                continue
            visited.add(edge.target_id)
            node = self._nodes[edge.target_id]
            path.append(node)
            if node.id == end.id:
                return path
            stack.append(iter(list(node.edges.values())))

        return []

    # --------------------------------------------------------
    # Stats
    # --------------------------------------------------------

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    @property
    def edge_count(self) -> int:
        return sum(len(n.edges) for n in self._nodes.values())

    def compute_state_hash(self) -> str:
        """Deterministic hash of membership and payloads.

        Two replicas that converged produce the same hash.
        """
        h = hashlib.sha256()
        for nid in sorted(self._nodes, key=str):
            node = self._nodes[nid]
            h.update(nid.bytes)
            h.update(len(node.payload).to_bytes(8, 'big'))
            h.update(node.payload)
            for eid in sorted(node.edges, key=str):
                edge = node.edges[eid]
                h.update(eid.bytes)
                h.update(edge.source_id.bytes)
                h.update(edge.target_id.bytes)
        return h.hexdigest()

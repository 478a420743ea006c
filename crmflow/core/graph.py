"""
WorkflowGraph: parsed nodes and edges of one automation.

The graph is built once per run. It owns the adjacency map the engine walks
and the checks used both at save time (``validate``) and at run start
(``trigger_node``, ``find_cycle``).
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .exceptions import GraphValidationError
from .nodes import (
    BranchNode,
    ConditionNode,
    NodeType,
    TriggerNode,
    create_node_from_dict,
)

logger = logging.getLogger(__name__)


class WorkflowEdge(BaseModel):
    """Directed edge. ``source_handle`` names the output of a branching node it leaves from."""

    id: Optional[str] = None
    source: str
    target: str
    source_handle: Optional[str] = Field(None, alias="sourceHandle")

    class Config:
        frozen = True
        extra = "ignore"
        populate_by_name = True


class WorkflowGraph:
    """
    Nodes and edges of an automation workflow.

    Example:
        graph = WorkflowGraph.from_dict(automation.workflow_data)
        trigger = graph.trigger_node()
        for edge in graph.outgoing(trigger.id):
            ...
    """

    def __init__(self, nodes: List[NodeType], edges: List[WorkflowEdge]):
        self.nodes: Dict[str, NodeType] = {}
        for node in nodes:
            if node.id in self.nodes:
                raise GraphValidationError(f"Duplicate node ID: {node.id}")
            self.nodes[node.id] = node
        self.edges = edges

        # Adjacency keeps authored edge order
        self._outgoing: Dict[str, List[WorkflowEdge]] = {node_id: [] for node_id in self.nodes}
        for edge in edges:
            self._outgoing.setdefault(edge.source, []).append(edge)

    @classmethod
    def from_dict(cls, workflow_data: Optional[Dict[str, Any]]) -> "WorkflowGraph":
        """
        Parse the editor's workflow payload.

        Args:
            workflow_data: Dict with "nodes" and "edges" keys (viewport and
                node positions are ignored)

        Raises:
            GraphValidationError: If a node or edge cannot be parsed
        """
        workflow_data = workflow_data or {}

        nodes = []
        for node_data in workflow_data.get("nodes") or []:
            try:
                nodes.append(create_node_from_dict(node_data))
            except (ValueError, AttributeError) as e:
                node_id = node_data.get("id") if isinstance(node_data, dict) else None
                raise GraphValidationError(f"Failed to parse node {node_id}: {e}")

        edges = []
        for edge_data in workflow_data.get("edges") or []:
            try:
                edges.append(WorkflowEdge(**edge_data))
            except (ValueError, TypeError) as e:
                raise GraphValidationError(f"Failed to parse edge {edge_data}: {e}")

        logger.debug(f"Parsed workflow: {len(nodes)} nodes, {len(edges)} edges")
        return cls(nodes, edges)

    def __len__(self) -> int:
        return len(self.nodes)

    def get(self, node_id: str) -> Optional[NodeType]:
        return self.nodes.get(node_id)

    def outgoing(self, node_id: str) -> List[WorkflowEdge]:
        return self._outgoing.get(node_id, [])

    def trigger_nodes(self) -> List[TriggerNode]:
        return [n for n in self.nodes.values() if isinstance(n, TriggerNode)]

    def trigger_node(self) -> TriggerNode:
        """
        Return the single trigger node.

        Raises:
            GraphValidationError: "No trigger node found" unless there is exactly one
        """
        triggers = self.trigger_nodes()
        if len(triggers) != 1:
            if triggers:
                logger.warning(f"Workflow has {len(triggers)} trigger nodes, expected exactly one")
            raise GraphValidationError("No trigger node found")
        return triggers[0]

    @staticmethod
    def trigger_type_of(workflow_data: Optional[Dict[str, Any]]) -> Optional[str]:
        """
        Trigger type of the single trigger node, read from the raw payload.

        Other nodes are not parsed, so a malformed action or branch does not
        hide the automation from matching; the run reports it instead.
        Returns None unless there is exactly one trigger node.
        """
        triggers = [
            node for node in (workflow_data or {}).get("nodes") or []
            if isinstance(node, dict) and node.get("type") == "trigger"
        ]
        if len(triggers) != 1:
            return None
        return (triggers[0].get("data") or {}).get("type") or None

    def branch_edges(self, node_id: str) -> List[WorkflowEdge]:
        """Outgoing edges of ``node_id`` that lead to branch nodes, in authored order."""
        return [
            e for e in self.outgoing(node_id)
            if isinstance(self.nodes.get(e.target), BranchNode)
        ]

    def find_cycle(self, start_id: str) -> Optional[List[str]]:
        """
        Look for a cycle among the nodes reachable from ``start_id``.

        Iterative depth-first search with a visited set and an on-path set.

        Returns:
            The node IDs forming the cycle, or None if the reachable graph is acyclic
        """
        visited = set()
        on_path: List[str] = []
        on_path_set = set()
        stack = [(start_id, iter(self.outgoing(start_id)))]
        visited.add(start_id)
        on_path.append(start_id)
        on_path_set.add(start_id)

        while stack:
            node_id, edges = stack[-1]
            edge = next(edges, None)
            if edge is None:
                stack.pop()
                on_path.pop()
                on_path_set.discard(node_id)
                continue

            target = edge.target
            if target in on_path_set:
                return on_path[on_path.index(target):] + [target]
            if target in visited or target not in self.nodes:
                continue

            visited.add(target)
            on_path.append(target)
            on_path_set.add(target)
            stack.append((target, iter(self.outgoing(target))))

        return None

    def validate(self) -> None:
        """
        Save-time validation of the whole graph.

        Checks:
        1. Exactly one trigger node
        2. Every node is a known kind with a valid config
        3. All edges reference existing nodes
        4. Branch nodes are only fed by condition nodes
        5. No cycles reachable from the trigger

        Raises:
            GraphValidationError: On the first problem found
        """
        triggers = self.trigger_nodes()
        if len(triggers) != 1:
            raise GraphValidationError(
                f"Workflow must have exactly one trigger node (found {len(triggers)})"
            )

        for node in self.nodes.values():
            try:
                node.validate_node()
            except ValueError as e:
                raise GraphValidationError(str(e))

        for edge in self.edges:
            if edge.source not in self.nodes:
                raise GraphValidationError(f"Edge references non-existent node: {edge.source}")
            if edge.target not in self.nodes:
                raise GraphValidationError(f"Edge references non-existent node: {edge.target}")
            if isinstance(self.nodes[edge.target], BranchNode) and not isinstance(
                self.nodes[edge.source], ConditionNode
            ):
                raise GraphValidationError(
                    f"Branch node {edge.target} must be connected from a condition node"
                )

        cycle = self.find_cycle(triggers[0].id)
        if cycle:
            raise GraphValidationError(f"Workflow contains a cycle: {' -> '.join(cycle)}")

        logger.info("Graph validation passed")

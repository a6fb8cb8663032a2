"""Cost functions driving the search. Lower is better, never negative.

Local costs are a sum of per-node costs, so the gain of a rule is the same
wherever it matches and can be read off the rule itself. Non-local costs
(depth, arbitrary callables) are evaluated on whole graphs.
"""
from __future__ import annotations

from typing import Callable

from .graph import Graph, Node


class CostFunction:
    name = "cost"
    local = True

    def node_cost(self, node: Node) -> float:
        raise NotImplementedError

    def __call__(self, graph: Graph) -> float:
        total = 0.0
        for nid in graph.op_nodes():
            node = graph.node(nid)
            total += self(node.body) if node.body is not None else self.node_cost(node)
        return total

    def rule_gain(self, rule) -> float:
        """Cost removed by one application of rule (local costs only)."""
        return self(rule.pattern) - self(rule.replacement)

    def __repr__(self):
        return f"{type(self).__name__}()"


class GateCount(CostFunction):
    name = "gates"
    def node_cost(self, node: Node) -> float: return 1.0 if node.op.is_gate else 0.0


class TwoQubitCount(CostFunction):
    name = "two_qubit"
    def node_cost(self, node: Node) -> float: return 1.0 if node.op.n_qubits >= 2 else 0.0


class WeightedCost(CostFunction):
    """Gate count weighted by qubit arity; multi-qubit gates dominate."""
    name = "weighted"

    def __init__(self, one_q: float = 1.0, two_q: float = 10.0, three_q: float = 30.0):
        if min(one_q, two_q, three_q) < 0:
            raise ValueError("weights must be non-negative")
        self.weights = {1: one_q, 2: two_q, 3: three_q}

    def node_cost(self, node: Node) -> float:
        return self.weights.get(node.op.n_qubits, 0.0) if node.op.is_gate else 0.0

    def __repr__(self):
        w = self.weights
        return f"WeightedCost(one_q={w[1]}, two_q={w[2]}, three_q={w[3]})"


class Depth(CostFunction):
    name = "depth"
    local = False
    def __call__(self, graph: Graph) -> float: return float(graph.depth())


class CallableCost(CostFunction):
    """Wrap a plain graph -> number function. Treated as non-local."""
    local = False

    def __init__(self, fn: Callable[[Graph], float], name: str | None = None):
        self.fn = fn
        self.name = name or getattr(fn, "__name__", "callable")

    def __call__(self, graph: Graph) -> float: return float(self.fn(graph))

    def __repr__(self):
        return f"CallableCost({self.name})"


_COSTS: dict[str, Callable[[], CostFunction]] = {
    "gates": GateCount,
    "two_qubit": TwoQubitCount,
    "weighted": WeightedCost,
    "depth": Depth,
}


def get_cost_function(cost=None) -> CostFunction:
    """Resolve a selector name, CostFunction or callable. None means gate count."""
    if cost is None:
        return GateCount()
    if isinstance(cost, CostFunction):
        return cost
    if isinstance(cost, str):
        if cost not in _COSTS:
            raise ValueError(f"Unknown cost {cost!r}, expected one of {sorted(_COSTS)}")
        return _COSTS[cost]()
    if callable(cost):
        return CallableCost(cost)
    raise TypeError(f"Cannot use {type(cost).__name__} as a cost function")

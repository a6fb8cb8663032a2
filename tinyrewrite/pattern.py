"""
Rewrite rules and their decomposition into matching constraints.

A pattern is turned into a flat sequence of constraints, rooted at its first
operation in topological order:

    Root(op, params)                       anchor node has this kind
    Follow(var, dir, index, to, op, params) walk the wire at var's port to a new node
    Link(var, dir, index, other, to)        wire at var's port reaches an already bound node

Variables are numbered in the order nodes are bound, so patterns that share
structure share a constraint prefix.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from math import isclose

from .errors import BoundaryMismatch, MalformedPattern, StructuralError
from .graph import INPUT_ID, OUTPUT_ID, Direction, Graph, in_port, out_port
from .ir import Circuit, Op


@dataclass(frozen=True)
class Root:
    op: Op
    params: tuple


@dataclass(frozen=True)
class Follow:
    var: int
    direction: Direction
    index: int
    to_index: int
    op: Op
    params: tuple


@dataclass(frozen=True)
class Link:
    var: int
    direction: Direction
    index: int
    other: int
    to_index: int


Constraint = Root | Follow | Link


def params_match(pattern: tuple, host: tuple) -> bool:
    return len(pattern) == len(host) and all(isclose(a, b, rel_tol=0.0, abs_tol=1e-9) for a, b in zip(pattern, host))


@dataclass
class Rule:
    """Left-hand pattern, right-hand replacement with the same boundary, and a priority.

    Higher priority wins when several rules apply at the same place.
    """
    pattern: Graph
    replacement: Graph
    priority: int = 0
    name: str = ""

    @classmethod
    def from_circuits(cls, lhs: Circuit, rhs: Circuit, priority: int = 0, name: str = "") -> Rule:
        if not name:
            fmt = lambda c: ",".join(op.op.name.lower() for op in c.ops)
            name = f"{fmt(lhs)}->{fmt(rhs)}"
        return cls(Graph.from_circuit(lhs), Graph.from_circuit(rhs), priority, name)


@dataclass(frozen=True)
class PatternInfo:
    """Compiled view of one pattern: constraints plus boundary bookkeeping.

    nodes[v] is the pattern node bound to variable v. inputs[i] lists the
    (var, in-index) ports fed by boundary input i; outputs[j] is the
    (var, out-index) port feeding boundary output j.
    """
    constraints: tuple[Constraint, ...]
    nodes: tuple[int, ...]
    inputs: tuple[tuple[tuple[int, int], ...], ...]
    outputs: tuple[tuple[int, int], ...]
    out_arity: tuple[int, ...] = field(default=())

    @property
    def size(self) -> int: return len(self.nodes)


def check_rule(rule: Rule):
    """Raise MalformedPattern / BoundaryMismatch if rule cannot be compiled."""
    label = rule.name or "rule"
    for side, g in (("pattern", rule.pattern), ("replacement", rule.replacement)):
        try:
            g.validate()
        except (StructuralError, ValueError) as e:
            raise MalformedPattern(f"{label}: {side} is not well-formed: {e}") from e
    if rule.pattern.signature != rule.replacement.signature:
        p, r = rule.pattern, rule.replacement
        raise BoundaryMismatch(
            f"{label}: pattern boundary {[t.name for t in p.inputs]}->{[t.name for t in p.outputs]} "
            f"!= replacement {[t.name for t in r.inputs]}->{[t.name for t in r.outputs]}")
    pat = rule.pattern
    if len(pat) == 0:
        raise MalformedPattern(f"{label}: pattern has no operations")
    for nid in pat.op_nodes():
        if pat.op(nid).is_container:
            raise MalformedPattern(f"{label}: pattern contains {pat.op(nid).name} node {nid}")
    for i in range(len(pat.inputs)):
        targets = pat.targets(out_port(INPUT_ID, i))
        if not targets:
            raise MalformedPattern(f"{label}: boundary input {i} feeds nothing")
        if any(t.node == OUTPUT_ID for t in targets):
            raise MalformedPattern(f"{label}: boundary input {i} is wired straight to the output")
    seen = set()
    for j in range(len(pat.outputs)):
        src = pat.source(in_port(OUTPUT_ID, j))
        if src in seen:
            raise MalformedPattern(f"{label}: boundary outputs share port {src!r}")
        seen.add(src)


def decompose(pattern: Graph) -> PatternInfo:
    """Canonical constraint sequence for a validated pattern."""
    root = pattern.topological_order()[0]
    var_of = {root: 0}
    nodes = [root]
    node = pattern.node(root)
    cons: list[Constraint] = [Root(node.op, node.params)]
    seen = set()
    k = 0
    while k < len(nodes):
        pn = nodes[k]
        node = pattern.node(pn)
        ports = [in_port(pn, i) for i in range(len(node.inputs))] + \
                [out_port(pn, i) for i in range(len(node.outputs))]
        for port in ports:
            if port.direction == Direction.IN:
                ws = [pattern.in_wire(port)]
            else:
                ws = sorted(pattern.out_wires(port), key=lambda w: w.sort_key())
            for w in ws:
                other = w.src if port.direction == Direction.IN else w.dst
                if w in seen or other.node in (INPUT_ID, OUTPUT_ID):
                    continue
                seen.add(w)
                if other.node in var_of:
                    cons.append(Link(k, port.direction, port.index, var_of[other.node], other.index))
                else:
                    var_of[other.node] = len(nodes)
                    nodes.append(other.node)
                    onode = pattern.node(other.node)
                    cons.append(Follow(k, port.direction, port.index, other.index, onode.op, onode.params))
        k += 1
    if len(nodes) != len(pattern):
        unreached = sorted(set(pattern.op_nodes()) - set(nodes))
        raise MalformedPattern(f"pattern is not connected: nodes {unreached} unreachable from {root}")

    inputs = []
    for i in range(len(pattern.inputs)):
        inputs.append(tuple((var_of[t.node], t.index) for t in pattern.targets(out_port(INPUT_ID, i))))
    outputs = []
    for j in range(len(pattern.outputs)):
        src = pattern.source(in_port(OUTPUT_ID, j))
        outputs.append((var_of[src.node], src.index))
    arity = tuple(len(pattern.node(n).outputs) for n in nodes)
    return PatternInfo(tuple(cons), tuple(nodes), tuple(inputs), tuple(outputs), arity)

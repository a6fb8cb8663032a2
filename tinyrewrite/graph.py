"""Port-addressed, hierarchical circuit graph.

Nodes are operations, wires connect an output port to an input port of the same
type. Every graph owns an INPUT node (id 0) whose output ports are the graph's
inputs and an OUTPUT node (id 1) whose input ports are the graph's outputs.
Container nodes (REGION, CONDITIONAL) exclusively own a nested Graph.

Node ids are allocated monotonically and never reused, so an id that disappears
from a graph identifies a removed node for the rest of the graph's life.
"""
from __future__ import annotations

import hashlib
import math
import threading
from bisect import insort
from collections import Counter
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterator

from .errors import CycleDetected, DanglingWire, NodeHasDependents, PortOccupied, TypeMismatch
from .ir import Circuit, Op, Operation, WireType

INPUT_ID, OUTPUT_ID = 0, 1


class Direction(IntEnum):
    IN = 0
    OUT = 1


@dataclass(frozen=True, order=True)
class Port:
    node: int
    direction: Direction
    index: int

    def __repr__(self):
        return f"{self.node}.{'in' if self.direction == Direction.IN else 'out'}[{self.index}]"


def in_port(node: int, index: int) -> Port: return Port(node, Direction.IN, index)
def out_port(node: int, index: int) -> Port: return Port(node, Direction.OUT, index)


@dataclass(frozen=True)
class Wire:
    src: Port
    dst: Port

    def sort_key(self) -> tuple: return (self.src.node, self.src.index, self.dst.node, self.dst.index)


class Node:
    """One operation instance. Signature is fixed at creation from the kind (and body)."""
    __slots__ = ('id', 'op', 'params', 'body', 'inputs', 'outputs')

    def __init__(self, nid: int, op: Op, params: tuple = (), body: Graph | None = None,
                 inputs: tuple[WireType, ...] = (), outputs: tuple[WireType, ...] = ()):
        self.id = nid
        self.op = op
        self.params = params
        self.body = body
        self.inputs = inputs
        self.outputs = outputs

    def __repr__(self):
        p = f"({', '.join(f'{x:.4g}' for x in self.params)})" if self.params else ""
        return f"Node({self.id}, {self.op.name}{p})"


def node_signature(op: Op, body: Graph | None = None) -> tuple[tuple[WireType, ...], tuple[WireType, ...]]:
    """Port types of a node of kind op, owning body if it is a container."""
    if op == Op.REGION: return body.inputs, body.outputs
    if op == Op.CONDITIONAL: return (WireType.BOOL,) + body.inputs, body.outputs
    return op.signature


class Graph:
    """Hierarchical DAG of operations connected by typed wires."""

    def __init__(self, inputs, outputs):
        self.inputs: tuple[WireType, ...] = tuple(inputs)
        self.outputs: tuple[WireType, ...] = tuple(outputs)
        self._nodes: dict[int, Node] = {}
        self._in: dict[tuple[int, int], Wire] = {}
        self._out: dict[tuple[int, int], list[Wire]] = {}
        self._next_id = 0
        self._owner: Node | None = None
        self._lock = threading.RLock()
        self._version = 0
        # Cached topological ranks, kept valid across edits; None until first asked for
        self._rank: dict[int, float] | None = None
        self._unranked: set[int] = set()
        self._insert(Node(self._alloc(), Op.INPUT, outputs=self.inputs))
        self._insert(Node(self._alloc(), Op.OUTPUT, inputs=self.outputs))

    def _alloc(self) -> int:
        nid = self._next_id; self._next_id += 1
        return nid

    def _insert(self, node: Node):
        self._nodes[node.id] = node
        self._version += 1
        if self._rank is not None: self._unranked.add(node.id)

    def __getstate__(self):
        state = self.__dict__.copy()
        del state['_lock']
        state['_rank'], state['_unranked'] = None, set()
        return state

    def __setstate__(self, state):
        self.__dict__.update(state)
        self._lock = threading.RLock()

    # Queries -----------------------------------------------------------------

    @property
    def signature(self) -> tuple[tuple[WireType, ...], tuple[WireType, ...]]: return self.inputs, self.outputs
    @property
    def lock(self) -> threading.RLock: return self._lock
    @property
    def version(self) -> int:
        """Bumped by every structural edit."""
        return self._version

    def __len__(self) -> int: return len(self._nodes) - 2
    def __contains__(self, nid: int) -> bool: return nid in self._nodes
    def node(self, nid: int) -> Node: return self._nodes[nid]
    def op(self, nid: int) -> Op: return self._nodes[nid].op
    def nodes(self) -> list[int]: return sorted(self._nodes)
    def op_nodes(self) -> list[int]: return sorted(n for n in self._nodes if n > OUTPUT_ID)

    def port_type(self, port: Port) -> WireType:
        node = self._nodes[port.node]
        types = node.inputs if port.direction == Direction.IN else node.outputs
        return types[port.index]

    def in_wire(self, port: Port) -> Wire | None:
        return self._in.get((port.node, port.index))

    def out_wires(self, port: Port) -> list[Wire]:
        return list(self._out.get((port.node, port.index), ()))

    def source(self, port: Port) -> Port | None:
        """Output port feeding the given input port."""
        w = self._in.get((port.node, port.index))
        return w.src if w is not None else None

    def targets(self, port: Port) -> list[Port]:
        """Input ports fed by the given output port, ordered by (node, index)."""
        return sorted(w.dst for w in self._out.get((port.node, port.index), ()))

    def incident_wires(self, nid: int) -> list[Wire]:
        node = self._nodes[nid]
        ws = [self._in[(nid, i)] for i in range(len(node.inputs)) if (nid, i) in self._in]
        for i in range(len(node.outputs)):
            ws.extend(self._out.get((nid, i), ()))
        return ws

    def wires(self) -> list[Wire]:
        return sorted((w for ws in self._out.values() for w in ws), key=Wire.sort_key)

    def predecessors(self, nid: int) -> list[int]:
        node = self._nodes[nid]
        return sorted({self._in[(nid, i)].src.node for i in range(len(node.inputs)) if (nid, i) in self._in})

    def successors(self, nid: int) -> list[int]:
        node = self._nodes[nid]
        return sorted({w.dst.node for i in range(len(node.outputs)) for w in self._out.get((nid, i), ())})

    def neighbors(self, nid: int) -> list[int]:
        """Nodes one wire hop away, in either direction."""
        return sorted(set(self.predecessors(nid)) | set(self.successors(nid)))

    # Mutation ----------------------------------------------------------------

    def add_node(self, op: Op, params: tuple = (), body: Graph | None = None) -> int:
        """Add an operation node with ports allocated from its kind. Returns its id."""
        if op.is_boundary:
            raise ValueError("boundary nodes are created with the graph")
        if op.is_container != (body is not None):
            raise ValueError(f"{op.name} {'requires' if op.is_container else 'does not take'} a body")
        if body is not None and body._owner is not None:
            raise ValueError("body graph is already owned by another node")
        if body is self:
            raise ValueError("graph cannot own itself")
        params = tuple(float(p) for p in params)
        if len(params) != op.n_params:
            raise ValueError(f"{op.name} takes {op.n_params} params, got {len(params)}")
        inputs, outputs = node_signature(op, body)
        with self._lock:
            node = Node(self._alloc(), op, params, body, inputs, outputs)
            if body is not None: body._owner = node
            self._insert(node)
        return node.id

    def _check_port(self, port: Port, direction: Direction):
        if port.direction != direction:
            raise ValueError(f"{port!r} is not an {direction.name} port")
        if port.node not in self._nodes:
            raise ValueError(f"Unknown node {port.node}")
        node = self._nodes[port.node]
        n = len(node.inputs) if direction == Direction.IN else len(node.outputs)
        if not 0 <= port.index < n:
            raise ValueError(f"{port!r} out of range for {node!r}")

    def connect(self, src: Port, dst: Port) -> Wire:
        """Wire output port src to input port dst."""
        self._check_port(src, Direction.OUT)
        self._check_port(dst, Direction.IN)
        with self._lock:
            t_src, t_dst = self.port_type(src), self.port_type(dst)
            if t_src != t_dst:
                raise TypeMismatch(f"{src!r} carries {t_src.name}, {dst!r} expects {t_dst.name}")
            if (dst.node, dst.index) in self._in:
                raise PortOccupied(f"{dst!r} already has an incoming wire")
            if not t_src.copyable and self._out.get((src.node, src.index)):
                raise PortOccupied(f"{src!r} is linear and already wired")
            w = Wire(src, dst)
            self._in[(dst.node, dst.index)] = w
            self._out.setdefault((src.node, src.index), []).append(w)
            self._version += 1
            rank = self._rank
            if rank is not None and src.node in rank and dst.node in rank and rank[src.node] >= rank[dst.node]:
                self._drop_rank()
        return w

    def disconnect(self, wire: Wire):
        with self._lock:
            if self._in.get((wire.dst.node, wire.dst.index)) != wire:
                raise ValueError(f"{wire} is not in the graph")
            self._version += 1
            del self._in[(wire.dst.node, wire.dst.index)]
            ws = self._out[(wire.src.node, wire.src.index)]
            ws.remove(wire)
            if not ws: del self._out[(wire.src.node, wire.src.index)]

    def remove_node(self, nid: int, cascade: bool = False) -> Node:
        """Remove a node. Incident wires go with it only when cascade=True."""
        if nid not in self._nodes:
            raise ValueError(f"Unknown node {nid}")
        if self._nodes[nid].op.is_boundary:
            raise ValueError("boundary nodes cannot be removed")
        with self._lock:
            ws = self.incident_wires(nid)
            if ws and not cascade:
                raise NodeHasDependents(f"node {nid} has {len(ws)} incident wires")
            for w in ws:
                self.disconnect(w)
            node = self._nodes.pop(nid)
            self._version += 1
            if self._rank is not None:
                self._rank.pop(nid, None)
                self._unranked.discard(nid)
            if node.body is not None: node.body._owner = None
        return node

    # Ordering and validation ---------------------------------------------------

    def topological_order(self, boundary: bool = False) -> list[int]:
        """Deterministic topological sort (Kahn's algorithm, smallest-id-first)."""
        in_deg = {nid: len(self.predecessors(nid)) for nid in self._nodes}
        ready = sorted(nid for nid, d in in_deg.items() if d == 0)
        order: list[int] = []
        while ready:
            nid = ready.pop(0)
            order.append(nid)
            for s in self.successors(nid):
                in_deg[s] -= 1
                if in_deg[s] == 0: insort(ready, s)
        if len(order) != len(self._nodes):
            stuck = sorted(n for n, d in in_deg.items() if d > 0)
            raise CycleDetected(f"cycle through nodes {stuck[:8]}")
        return order if boundary else [n for n in order if n > OUTPUT_ID]

    def topological_rank(self) -> dict[int, float]:
        """
        Node -> rank with rank[u] < rank[v] for every wire u -> v.

        Computed once, then maintained: nodes added later are slotted between
        their ranked neighbours, and only an edit that breaks the order forces a
        full re-sort. The returned dict is the live cache; treat it as read-only.
        """
        with self._lock:
            if self._rank is None:
                self._rank = {nid: float(i) for i, nid in enumerate(self.topological_order(boundary=True))}
                self._unranked.clear()
            elif self._unranked:
                self._place_unranked()
            return self._rank

    def _drop_rank(self):
        self._rank = None
        self._unranked.clear()

    def _place_unranked(self):
        pending = self._unranked
        while pending:
            # weakly connected group of new nodes; every neighbour outside it is ranked
            comp, stack = set(), [min(pending)]
            while stack:
                n = stack.pop()
                if n in comp: continue
                comp.add(n)
                stack.extend(m for m in self.neighbors(n) if m in pending and m not in comp)
            pending -= comp
            if not self._rank_group(comp):
                self._drop_rank()
                self.topological_rank()
                return

    def _rank_group(self, comp: set[int]) -> bool:
        rank = self._rank
        in_deg = {n: sum(1 for p in self.predecessors(n) if p in comp) for n in comp}
        ready = sorted(n for n, d in in_deg.items() if d == 0)
        order = []
        while ready:
            n = ready.pop(0)
            order.append(n)
            for s in self.successors(n):
                if s in comp:
                    in_deg[s] -= 1
                    if in_deg[s] == 0: insort(ready, s)
        if len(order) != len(comp):
            return False
        lo = max((rank[p] for n in comp for p in self.predecessors(n) if p not in comp), default=None)
        hi = min((rank[s] for n in comp for s in self.successors(n) if s not in comp), default=None)
        k = len(order)
        if lo is None and hi is None:
            vals = [float(i) for i in range(k)]
        elif hi is None:
            vals = [lo + i + 1 for i in range(k)]
        elif lo is None:
            vals = [hi - k + i for i in range(k)]
        else:
            step = (hi - lo) / (k + 1)
            vals = [lo + step * (i + 1) for i in range(k)]
        # lo >= hi, or float spacing ran out
        bounds = [lo if lo is not None else -math.inf] + vals + [hi if hi is not None else math.inf]
        if any(a >= b for a, b in zip(bounds, bounds[1:])):
            return False
        rank.update(zip(order, vals))
        return True

    def validate(self):
        """Raise the first structural invariant violation found, recursing into bodies."""
        for nid, node in self._nodes.items():
            for i, t in enumerate(node.inputs):
                w = self._in.get((nid, i))
                if w is None:
                    raise DanglingWire(f"{in_port(nid, i)!r} has no incoming wire")
                if self.port_type(w.src) != t:
                    raise TypeMismatch(f"{w} joins {self.port_type(w.src).name} to {t.name}")
            for i, t in enumerate(node.outputs):
                n = len(self._out.get((nid, i), ()))
                if not t.copyable and n != 1:
                    raise DanglingWire(f"linear {out_port(nid, i)!r} has {n} outgoing wires")
            if node.op.is_container:
                if node.body is None or node.body._owner is not node:
                    raise ValueError(f"{node!r} does not own its body")
                if (node.inputs, node.outputs) != node_signature(node.op, node.body):
                    raise TypeMismatch(f"{node!r} ports disagree with its body")
                node.body.validate()
        self.topological_order()

    def is_well_formed(self) -> bool:
        try:
            self.validate()
        except (DanglingWire, TypeMismatch, CycleDetected, ValueError):
            return False
        return True

    # Metrics -------------------------------------------------------------------

    def walk(self, path: tuple[int, ...] = ()) -> Iterator[tuple[tuple[int, ...], Graph]]:
        """Pre-order traversal of this graph and every nested body (read-only view)."""
        yield path, self
        for nid in self.op_nodes():
            body = self._nodes[nid].body
            if body is not None:
                yield from body.walk(path + (nid,))

    def count_ops(self) -> Counter:
        """Operation counts over every hierarchy level (containers included)."""
        return Counter(g.op(n) for _, g in self.walk() for n in g.op_nodes())

    def n_gates(self) -> int:
        return sum(1 for _, g in self.walk() for n in g.op_nodes() if g.op(n).is_gate)

    def depth(self) -> int:
        """Longest chain of gates through the DAG (containers count their body depth)."""
        dist: dict[int, int] = {}
        for nid in self.topological_order(boundary=True):
            node = self._nodes[nid]
            w = 1 if node.op.is_gate else (node.body.depth() if node.body is not None else 0)
            dist[nid] = max((dist[p] for p in self.predecessors(nid)), default=0) + w
        return max(dist.values(), default=0)

    def circuit_hash(self) -> str:
        """Digest of the graph structure, independent of node ids."""
        digest: dict[int, bytes] = {}
        for nid in self.topological_order(boundary=True):
            node = self._nodes[nid]
            h = hashlib.blake2b(digest_size=16)
            h.update(node.op.name.encode())
            h.update(repr(node.params).encode())
            if node.body is not None:
                h.update(node.body.circuit_hash().encode())
            if node.op == Op.INPUT:
                h.update(repr([t.name for t in node.outputs]).encode())
            for i in range(len(node.inputs)):
                src = self.source(in_port(nid, i))
                h.update(digest[src.node] if src is not None else b"-")
                h.update(str(src.index if src is not None else -1).encode())
            digest[nid] = h.digest()
        total = hashlib.blake2b(digest_size=16)
        for d in sorted(digest.values()):
            total.update(d)
        return total.hexdigest()

    # Copy ----------------------------------------------------------------------

    def copy(self) -> Graph:
        """Deep copy preserving node ids, wire order and nested bodies."""
        g = Graph(self.inputs, self.outputs)
        for nid in self.op_nodes():
            node = self._nodes[nid]
            body = node.body.copy() if node.body is not None else None
            new = Node(nid, node.op, node.params, body, node.inputs, node.outputs)
            if body is not None: body._owner = new
            g._insert(new)
        for key, ws in self._out.items():
            for w in ws:
                g._in[(w.dst.node, w.dst.index)] = w
                g._out.setdefault(key, []).append(w)
        g._next_id = self._next_id
        if self._rank is not None:
            g._rank, g._unranked = dict(self._rank), set(self._unranked)
        return g

    def _become(self, other: Graph):
        """Take over the contents of other (a copy of self). Ownership of self is kept."""
        if other.signature != self.signature:
            raise ValueError("cannot replace a graph by one with a different signature")
        with self._lock:
            self._nodes, self._in, self._out = other._nodes, other._in, other._out
            self._next_id = max(self._next_id, other._next_id)
            self._version += 1
            self._drop_rank()

    def __repr__(self):
        ins = ",".join(t.name for t in self.inputs)
        outs = ",".join(t.name for t in self.outputs)
        return f"Graph(({ins}) -> ({outs}), {len(self)} ops)"

    # Circuit conversion --------------------------------------------------------

    @staticmethod
    def from_circuit(circuit: Circuit) -> Graph:
        """Build a graph from a qubit-indexed Circuit. Qubit wires first, then bit wires."""
        sig = [WireType.QUBIT] * circuit.n_qubits + [WireType.BIT] * circuit.n_bits
        g = Graph(sig, sig)
        nq = circuit.n_qubits
        front = [out_port(INPUT_ID, i) for i in range(len(sig))]
        for op in circuit.ops:
            lines = list(op.qubits)
            if op.op == Op.MEASURE: lines.append(nq + op.classical_bit)
            if op.condition is None:
                nid = g.add_node(op.op, op.params)
                offset = 0
            else:
                body = Graph.from_operation(op)
                read = g.add_node(Op.READ_BIT)
                g.connect(front[nq + op.condition], in_port(read, 0))
                front[nq + op.condition] = out_port(read, 0)
                nid = g.add_node(Op.CONDITIONAL, body=body)
                g.connect(out_port(read, 1), in_port(nid, 0))
                offset = 1
            for i, line in enumerate(lines):
                g.connect(front[line], in_port(nid, i + offset))
                front[line] = out_port(nid, i)
        for i, p in enumerate(front):
            g.connect(p, in_port(OUTPUT_ID, i))
        return g

    @staticmethod
    def from_operation(op: Operation) -> Graph:
        """Single-operation graph over exactly the wires the operation touches."""
        inputs, outputs = op.op.signature
        g = Graph(inputs, outputs)
        nid = g.add_node(op.op, op.params)
        for i in range(len(inputs)):
            g.connect(out_port(INPUT_ID, i), in_port(nid, i))
            g.connect(out_port(nid, i), in_port(OUTPUT_ID, i))
        return g

    def to_circuit(self) -> Circuit:
        """Linearise back to a Circuit. Boundary permutations become trailing SWAPs."""
        nq = sum(t == WireType.QUBIT for t in self.inputs)
        nb = len(self.inputs) - nq
        if self.inputs != self.outputs or any(t == WireType.BOOL for t in self.inputs) \
                or self.inputs[:nq] != (WireType.QUBIT,) * nq:
            raise ValueError("to_circuit needs a (qubits..., bits...) endomorphic signature")
        c = Circuit(nq, nb)
        out_lines = _linearise(self, list(range(nq + nb)), None, c.ops, nq)
        # Undo any wire permutation left by rewrites
        perm = list(out_lines)
        for j in range(nq):
            a = perm[j]
            if a != j:
                c.ops.append(Operation(Op.SWAP, (j, a)))
                perm = [j if v == a else a if v == j else v for v in perm]
        if perm != list(range(nq + nb)):
            raise ValueError("classical bit wires are permuted")
        return c


def _linearise(g: Graph, lines_in: list, condition: int | None, ops: list, nq: int) -> list:
    """Emit g's operations onto ops; returns the line carried by each output."""
    line_of: dict[tuple[int, int], object] = {(INPUT_ID, i): ln for i, ln in enumerate(lines_in)}

    def line(nid: int, i: int):
        src = g.source(in_port(nid, i))
        return line_of[(src.node, src.index)]

    for nid in g.topological_order():
        node = g.node(nid)
        ins = [line(nid, i) for i in range(len(node.inputs))]
        if node.op == Op.READ_BIT:
            line_of[(nid, 0)] = ins[0]
            line_of[(nid, 1)] = ("bool", ins[0])
        elif node.op == Op.REGION:
            outs = _linearise(node.body, ins, condition, ops, nq)
            line_of.update({(nid, i): ln for i, ln in enumerate(outs)})
        elif node.op == Op.CONDITIONAL:
            ctrl = ins[0]
            if condition is not None or not isinstance(ctrl, tuple):
                raise ValueError("only single-level conditionals on a read bit linearise")
            outs = _linearise(node.body, ins[1:], ctrl[1] - nq, ops, nq)
            line_of.update({(nid, i): ln for i, ln in enumerate(outs)})
        else:
            if node.op == Op.MEASURE:
                ops.append(Operation(node.op, (ins[0],), node.params, ins[1] - nq, condition))
            else:
                ops.append(Operation(node.op, tuple(ins), node.params, None, condition))
            line_of.update({(nid, i): ln for i, ln in enumerate(ins)})
    return [line(OUTPUT_ID, i) for i in range(len(g.outputs))]

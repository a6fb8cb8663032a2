"""
Tests for the port-addressed circuit graph.

Tests:
    - Construction and typed wiring
    - Structural errors leave the graph untouched
    - Deterministic topological order, validation, hashing, copy
    - Circuit round trips, conditionals and nested regions
"""
import pytest
from tinyrewrite.ir import Circuit, Op, WireType
from tinyrewrite.graph import Graph, INPUT_ID, OUTPUT_ID, in_port, out_port, Port, Direction
from tinyrewrite.errors import (
    TypeMismatch, PortOccupied, NodeHasDependents, CycleDetected, DanglingWire, StructuralError,
)
from tinyrewrite.serial import dumps

Q, B, C = WireType.QUBIT, WireType.BIT, WireType.BOOL


def one_h() -> Graph:
    return Graph.from_circuit(Circuit(1).h(0))


# =============================================================================
# Construction
# =============================================================================

def test_boundary_nodes():
    g = Graph((Q, B), (Q, B))
    assert g.op(INPUT_ID) == Op.INPUT and g.op(OUTPUT_ID) == Op.OUTPUT
    assert g.node(INPUT_ID).outputs == (Q, B)
    assert g.node(OUTPUT_ID).inputs == (Q, B)
    assert len(g) == 0


def test_add_node_allocates_ports_from_kind():
    g = Graph((), ())
    n = g.add_node(Op.MEASURE)
    assert g.node(n).inputs == (Q, B)
    assert g.node(n).outputs == (Q, B)
    r = g.add_node(Op.READ_BIT)
    assert g.node(r).outputs == (B, C)


def test_add_node_checks_params_and_body():
    g = Graph((), ())
    with pytest.raises(ValueError):
        g.add_node(Op.RZ)
    with pytest.raises(ValueError):
        g.add_node(Op.H, (0.1,))
    with pytest.raises(ValueError):
        g.add_node(Op.REGION)
    with pytest.raises(ValueError):
        g.add_node(Op.H, body=Graph((Q,), (Q,)))
    with pytest.raises(ValueError):
        g.add_node(Op.INPUT)


def test_body_has_single_owner():
    body = one_h()
    g = Graph((Q,), (Q,))
    g.add_node(Op.REGION, body=body)
    with pytest.raises(ValueError):
        g.add_node(Op.REGION, body=body)


def test_conditional_signature_prepends_bool():
    g = Graph((), ())
    n = g.add_node(Op.CONDITIONAL, body=one_h())
    assert g.node(n).inputs == (C, Q)
    assert g.node(n).outputs == (Q,)


def test_node_ids_never_reused():
    g = Graph((), ())
    a = g.add_node(Op.H)
    g.remove_node(a)
    b = g.add_node(Op.H)
    assert b > a
    assert a not in g


# =============================================================================
# Wiring errors
# =============================================================================

def test_connect_type_mismatch():
    g = Graph((Q,), (Q,))
    r = g.add_node(Op.READ_BIT)
    with pytest.raises(TypeMismatch):
        g.connect(out_port(INPUT_ID, 0), in_port(r, 0))
    assert g.wires() == []


def test_connect_input_port_occupied():
    g = Graph((Q, Q), (Q, Q))
    h = g.add_node(Op.H)
    g.connect(out_port(INPUT_ID, 0), in_port(h, 0))
    with pytest.raises(PortOccupied):
        g.connect(out_port(INPUT_ID, 1), in_port(h, 0))
    assert len(g.wires()) == 1


def test_connect_linear_output_occupied():
    g = Graph((Q,), (Q,))
    a, b = g.add_node(Op.H), g.add_node(Op.H)
    g.connect(out_port(INPUT_ID, 0), in_port(a, 0))
    with pytest.raises(PortOccupied):
        g.connect(out_port(INPUT_ID, 0), in_port(b, 0))


def test_copyable_output_fans_out():
    g = Graph((B,), (B,))
    r = g.add_node(Op.READ_BIT)
    c1 = g.add_node(Op.CONDITIONAL, body=Graph((), ()))
    c2 = g.add_node(Op.CONDITIONAL, body=Graph((), ()))
    g.connect(out_port(INPUT_ID, 0), in_port(r, 0))
    g.connect(out_port(r, 1), in_port(c1, 0))
    g.connect(out_port(r, 1), in_port(c2, 0))
    g.connect(out_port(r, 0), in_port(OUTPUT_ID, 0))
    assert g.targets(out_port(r, 1)) == [in_port(c1, 0), in_port(c2, 0)]
    g.validate()


def test_connect_wrong_direction():
    g = one_h()
    with pytest.raises(ValueError):
        g.connect(in_port(2, 0), in_port(OUTPUT_ID, 0))
    with pytest.raises(ValueError):
        g.connect(out_port(99, 0), in_port(OUTPUT_ID, 0))


def test_remove_node_with_dependents():
    g = one_h()
    before = dumps(g)
    with pytest.raises(NodeHasDependents):
        g.remove_node(2)
    assert dumps(g) == before


def test_remove_node_cascade():
    g = one_h()
    node = g.remove_node(2, cascade=True)
    assert node.op == Op.H
    assert 2 not in g
    assert g.wires() == []


def test_boundary_nodes_cannot_be_removed():
    g = one_h()
    with pytest.raises(ValueError):
        g.remove_node(INPUT_ID, cascade=True)


def test_structural_errors_share_base():
    assert issubclass(TypeMismatch, StructuralError)
    assert issubclass(CycleDetected, StructuralError)


# =============================================================================
# Ordering and validation
# =============================================================================

def test_topological_order_smallest_id_first():
    g = Graph.from_circuit(Circuit(2).h(1).h(0).cx(0, 1))
    assert g.topological_order() == [2, 3, 4]
    assert g.topological_order(boundary=True) == [0, 2, 3, 4, 1]


def test_cycle_detected():
    g = Graph((), ())
    a, b = g.add_node(Op.H), g.add_node(Op.H)
    g.connect(out_port(a, 0), in_port(b, 0))
    g.connect(out_port(b, 0), in_port(a, 0))
    with pytest.raises(CycleDetected):
        g.topological_order()
    with pytest.raises(CycleDetected):
        g.validate()


def test_dangling_wire():
    g = Graph((Q,), (Q,))
    g.add_node(Op.H)
    with pytest.raises(DanglingWire):
        g.validate()
    assert not g.is_well_formed()


def test_from_circuit_is_well_formed(conditional_circuit):
    g = Graph.from_circuit(conditional_circuit)
    g.validate()
    assert g.count_ops()[Op.READ_BIT] == 1
    assert g.count_ops()[Op.CONDITIONAL] == 1


def test_neighbours():
    g = Graph.from_circuit(Circuit(2).h(0).cx(0, 1).x(1))
    assert g.predecessors(3) == [INPUT_ID, 2]
    assert g.successors(3) == [OUTPUT_ID, 4]
    assert g.neighbors(3) == [INPUT_ID, OUTPUT_ID, 2, 4]


def rank_respects_wires(g: Graph) -> bool:
    rank = g.topological_rank()
    return set(rank) == set(g.nodes()) and all(rank[w.src.node] < rank[w.dst.node] for w in g.wires())


def test_rank_maintained_across_edits(monkeypatch):
    calls = []
    sort = Graph.topological_order

    def counting(self, boundary=False):
        calls.append(boundary)
        return sort(self, boundary)
    monkeypatch.setattr(Graph, "topological_order", counting)

    g = Graph.from_circuit(Circuit(2).h(0).x(0).cx(0, 1))
    assert rank_respects_wires(g)
    # splice Z·S in place of H·X: the new nodes slot in between their neighbours
    g.remove_node(2, cascade=True)
    g.remove_node(3, cascade=True)
    z, s = g.add_node(Op.Z), g.add_node(Op.S)
    g.connect(out_port(INPUT_ID, 0), in_port(z, 0))
    g.connect(out_port(z, 0), in_port(s, 0))
    g.connect(out_port(s, 0), in_port(4, 0))
    assert rank_respects_wires(g)
    assert len(calls) == 1

    # a wire against the cached order forces a fresh sort
    g = Graph.from_circuit(Circuit(2).h(0).x(1))
    g.topological_rank()
    calls.clear()
    g.disconnect(g.in_wire(in_port(2, 0)))
    g.disconnect(g.in_wire(in_port(OUTPUT_ID, 1)))
    g.connect(out_port(3, 0), in_port(2, 0))
    assert rank_respects_wires(g)
    assert len(calls) == 1


def test_version_bumps_on_edits():
    g = one_h()
    v = g.version
    g.topological_rank()
    assert g.version == v
    g.disconnect(g.in_wire(in_port(OUTPUT_ID, 0)))
    assert g.version > v


# =============================================================================
# Metrics, hashing, copy
# =============================================================================

def test_depth_and_gate_count():
    g = Graph.from_circuit(Circuit(2).h(0).cx(0, 1).h(1).x(0))
    assert g.n_gates() == 4
    assert g.depth() == 3


def test_circuit_hash_ignores_ids():
    a = Graph.from_circuit(Circuit(2).h(0).cx(0, 1))
    b = Graph((Q, Q), (Q, Q))
    b.remove_node(b.add_node(Op.X))
    h = b.add_node(Op.H)
    cx = b.add_node(Op.CX)
    b.connect(out_port(INPUT_ID, 0), in_port(h, 0))
    b.connect(out_port(h, 0), in_port(cx, 0))
    b.connect(out_port(INPUT_ID, 1), in_port(cx, 1))
    b.connect(out_port(cx, 0), in_port(OUTPUT_ID, 0))
    b.connect(out_port(cx, 1), in_port(OUTPUT_ID, 1))
    assert a.circuit_hash() == b.circuit_hash()
    assert a.circuit_hash() != Graph.from_circuit(Circuit(2).h(1).cx(0, 1)).circuit_hash()


def test_copy_is_independent():
    g = Graph.from_circuit(Circuit(2).h(0).cx(0, 1))
    c = g.copy()
    assert dumps(c) == dumps(g)
    c.remove_node(2, cascade=True)
    assert 2 in g
    g.validate()


def test_copy_keeps_id_counter():
    g = Graph.from_circuit(Circuit(1).h(0))
    c = g.copy()
    assert c.add_node(Op.X) == g.add_node(Op.X)


def test_port_ordering():
    assert in_port(2, 0) < out_port(2, 0) < in_port(3, 0)
    assert Port(2, Direction.IN, 1) == in_port(2, 1)


# =============================================================================
# Circuit round trips and hierarchy
# =============================================================================

def test_to_circuit_round_trip():
    c = Circuit(3).h(0).cx(0, 1).rz(2, 0.25).ccx(0, 1, 2).swap(1, 2)
    out = Graph.from_circuit(c).to_circuit()
    assert out.ops == c.ops


def test_to_circuit_round_trip_conditional(conditional_circuit):
    out = Graph.from_circuit(conditional_circuit).to_circuit()
    assert out.ops == conditional_circuit.ops
    assert out.n_bits == 1


def test_walk_visits_nested_bodies(region_graph):
    paths = [path for path, _ in region_graph.walk()]
    assert paths == [(), (2,)]
    region_graph.validate()
    assert region_graph.n_gates() == 3

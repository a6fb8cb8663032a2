"""
Dense-unitary evaluation of qubit-only graphs, used to check rewrites.

A graph with n QUBIT inputs maps to a 2^n x 2^n matrix, input i being the most
significant qubit. REGION bodies are evaluated recursively; measurement, reset
and classical control have no unitary and raise ValueError.
"""
from __future__ import annotations

from math import cos, pi, sin, sqrt

import numpy as np

from .graph import INPUT_ID, OUTPUT_ID, Graph, in_port
from .ir import Op, WireType

MAX_QUBITS = 12

# Gate matrices
_SQRT2_INV, _T = 1 / sqrt(2), np.exp(1j * pi / 4)
_GATE_CACHE = {
    Op.X: np.array([[0, 1], [1, 0]], dtype=complex),
    Op.Y: np.array([[0, -1j], [1j, 0]], dtype=complex),
    Op.Z: np.array([[1, 0], [0, -1]], dtype=complex),
    Op.H: np.array([[1, 1], [1, -1]], dtype=complex) * _SQRT2_INV,
    Op.S: np.array([[1, 0], [0, 1j]], dtype=complex),
    Op.SDG: np.array([[1, 0], [0, -1j]], dtype=complex),
    Op.T: np.array([[1, 0], [0, _T]], dtype=complex),
    Op.TDG: np.array([[1, 0], [0, np.conj(_T)]], dtype=complex),
    Op.SX: np.array([[1 + 1j, 1 - 1j], [1 - 1j, 1 + 1j]], dtype=complex) / 2,
    Op.CX: np.array([[1, 0, 0, 0], [0, 1, 0, 0], [0, 0, 0, 1], [0, 0, 1, 0]], dtype=complex),
    Op.CZ: np.diag([1, 1, 1, -1]).astype(complex),
    Op.SWAP: np.array([[1, 0, 0, 0], [0, 0, 1, 0], [0, 1, 0, 0], [0, 0, 0, 1]], dtype=complex),
    Op.ECR: np.array([[0, 1, 0, 1j], [1, 0, -1j, 0], [0, 1j, 0, 1], [-1j, 0, 1, 0]], dtype=complex) * _SQRT2_INV,
    Op.CCX: np.eye(8, dtype=complex)[[0, 1, 2, 3, 4, 5, 7, 6]],
    Op.CCZ: np.diag([1, 1, 1, 1, 1, 1, 1, -1]).astype(complex),
}
_GATE_PARAM = {
    Op.RX: lambda t: np.array([[cos(t/2), -1j*sin(t/2)], [-1j*sin(t/2), cos(t/2)]], dtype=complex),
    Op.RY: lambda t: np.array([[cos(t/2), -sin(t/2)], [sin(t/2), cos(t/2)]], dtype=complex),
    Op.RZ: lambda t: np.array([[np.exp(-1j*t/2), 0], [0, np.exp(1j*t/2)]], dtype=complex),
    Op.CP: lambda t: np.diag([1, 1, 1, np.exp(1j*t)]).astype(complex),
    Op.RZZ: lambda t: np.diag([np.exp(-1j*t/2), np.exp(1j*t/2), np.exp(1j*t/2), np.exp(-1j*t/2)]),
}


def gate_matrix(op: Op, params: tuple = ()) -> np.ndarray:
    if op in _GATE_CACHE: return _GATE_CACHE[op]
    if op in _GATE_PARAM: return _GATE_PARAM[op](params[0])
    raise ValueError(f"{op.name} has no unitary")


def _apply(u: np.ndarray, matrix: np.ndarray, axes: list[int], n: int) -> np.ndarray:
    """Left-multiply the [2]*n + [dim] tensor u by matrix acting on axes."""
    k = len(axes)
    m = matrix.reshape([2] * (2 * k))
    u = np.tensordot(m, u, axes=(list(range(k, 2 * k)), axes))
    return np.moveaxis(u, list(range(k)), axes)


def _evolve(g: Graph, u: np.ndarray, lines: list[int], n: int) -> tuple[np.ndarray, list[int]]:
    """Apply g to u, input i living on tensor axis lines[i]. Returns (u, axis per output)."""
    axis_of = {(INPUT_ID, i): ax for i, ax in enumerate(lines)}

    def axis(nid: int, i: int) -> int:
        src = g.source(in_port(nid, i))
        return axis_of[(src.node, src.index)]

    for nid in g.topological_order():
        node = g.node(nid)
        ins = [axis(nid, i) for i in range(len(node.inputs))]
        if node.op == Op.REGION:
            u, outs = _evolve(node.body, u, ins, n)
        elif node.op.is_unitary:
            u = _apply(u, gate_matrix(node.op, node.params), ins, n)
            outs = ins
        else:
            raise ValueError(f"{node.op.name} has no unitary")
        axis_of.update({(nid, i): ax for i, ax in enumerate(outs)})
    return u, [axis(OUTPUT_ID, i) for i in range(len(g.outputs))]


def graph_unitary(graph: Graph) -> np.ndarray:
    """Unitary of a graph whose boundary is all QUBIT wires."""
    if any(t != WireType.QUBIT for t in graph.inputs + graph.outputs) or len(graph.inputs) != len(graph.outputs):
        raise ValueError("graph_unitary needs a qubit-only endomorphic signature")
    n = len(graph.inputs)
    if n > MAX_QUBITS:
        raise ValueError(f"{n} qubits is too many to simulate (max {MAX_QUBITS})")
    dim = 2 ** n
    u = np.eye(dim, dtype=complex).reshape([2] * n + [dim])
    u, outs = _evolve(graph, u, list(range(n)), n)
    # Output j is whatever axis the wire into OUTPUT port j ended on
    u = np.transpose(u, outs + [n])
    return u.reshape(dim, dim)


def unitaries_equal(a: np.ndarray, b: np.ndarray, atol: float = 1e-8) -> bool:
    """Equal up to global phase."""
    if a.shape != b.shape: return False
    idx = np.unravel_index(np.argmax(np.abs(a)), a.shape)
    if abs(a[idx]) < atol: return np.allclose(b, 0, atol=atol)
    phase = b[idx] / a[idx]
    if not np.isclose(abs(phase), 1.0, atol=atol): return False
    return np.allclose(a * phase, b, atol=atol)


def graphs_equivalent(a: Graph, b: Graph, atol: float = 1e-8) -> bool:
    """Do two qubit-only graphs implement the same unitary (up to global phase)?"""
    if a.signature != b.signature:
        return False
    return unitaries_equal(graph_unitary(a), graph_unitary(b), atol)

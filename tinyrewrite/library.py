"""
Built-in rewrite rules.

Contains:
    - standard_rules(): exact identities, priority cancellation > merge > conjugation
    - rules_from_equivalence_classes(): every member of a class rewrites to its cheapest member

Rules in the standard set:
    - Cancellation: [X,X]->[], [H,H]->[], [CX,CX]->[], [SWAP,SWAP]->[], [S,S†]->[], ...
    - Clifford merge: [S,S]->[Z], [T,T]->[S], [S†,S†]->[Z], [T†,T†]->[S†]
    - Conjugation: [H,X,H]->[Z], [H,Z,H]->[X], [H,CX,H]->[CZ], [H,CZ,H]->[CX]
Patterns match parameters exactly, so rotation merges are not expressible here.
"""
from __future__ import annotations

import logging
from typing import Iterable

from .cost import get_cost_function
from .errors import MalformedPattern
from .graph import INPUT_ID, OUTPUT_ID, Graph, in_port, out_port
from .ir import Circuit, Op, Q
from .pattern import Rule, check_rule, decompose

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

CANCEL, MERGE, CONJUGATE = 2, 1, 0

SELF_INVERSE: list[Op] = [Op.X, Op.Y, Op.Z, Op.H, Op.CX, Op.CZ, Op.SWAP, Op.CCX, Op.CCZ]
# Symmetric gates also cancel with their qubits listed the other way round
SYMMETRIC: list[Op] = [Op.CZ, Op.SWAP]

INVERSE_PAIRS: list[tuple[Op, Op]] = [(Op.S, Op.SDG), (Op.SDG, Op.S), (Op.T, Op.TDG), (Op.TDG, Op.T)]

# (gate, gate) -> result
CLIFFORD_MERGES: list[tuple[Op, Op]] = [
    (Op.S, Op.Z),
    (Op.T, Op.S),
    (Op.SDG, Op.Z),
    (Op.TDG, Op.SDG),
]

# bookend·inner·bookend -> result, all on one qubit
CONJUGATE_1Q: list[tuple[Op, Op, Op]] = [
    (Op.H, Op.X, Op.Z),
    (Op.H, Op.Z, Op.X),
]

# (inner, bookend qubit, result qubits) on a 2-qubit circuit
CONJUGATE_2Q: list[tuple[Op, int, Op, tuple[int, int]]] = [
    (Op.CX, 1, Op.CZ, (0, 1)),   # H·CX·H = CZ (H on target)
    (Op.CZ, 0, Op.CX, (1, 0)),   # H(q0)·CZ·H(q0) = CX with q0 as target
    (Op.CZ, 1, Op.CX, (0, 1)),
]


def _circ(n: int, *ops: tuple[Op, tuple[int, ...]]) -> Circuit:
    c = Circuit(n)
    for op, qubits in ops:
        c._add(op, qubits)
    return c


def _qubits(op: Op) -> tuple[int, ...]:
    return tuple(range(op.n_qubits))


def cancellation_rules() -> list[Rule]:
    rules = []
    for op in SELF_INVERSE:
        q = _qubits(op)
        rules.append(Rule.from_circuits(_circ(len(q), (op, q), (op, q)), Circuit(len(q)), CANCEL))
    for op in SYMMETRIC:
        rules.append(Rule.from_circuits(_circ(2, (op, (0, 1)), (op, (1, 0))), Circuit(2), CANCEL,
                                        name=f"{op.name.lower()},{op.name.lower()}~->"))
    for a, b in INVERSE_PAIRS:
        rules.append(Rule.from_circuits(_circ(1, (a, (0,)), (b, (0,))), Circuit(1), CANCEL))
    return rules


def merge_rules() -> list[Rule]:
    return [Rule.from_circuits(_circ(1, (op, (0,)), (op, (0,))), _circ(1, (res, (0,))), MERGE)
            for op, res in CLIFFORD_MERGES]


def conjugation_rules() -> list[Rule]:
    rules = [Rule.from_circuits(_circ(1, (b, (0,)), (inner, (0,)), (b, (0,))), _circ(1, (res, (0,))), CONJUGATE)
             for b, inner, res in CONJUGATE_1Q]
    for inner, q, res, res_q in CONJUGATE_2Q:
        lhs = _circ(2, (Op.H, (q,)), (inner, (0, 1)), (Op.H, (q,)))
        rules.append(Rule.from_circuits(lhs, _circ(2, (res, res_q)), CONJUGATE))
    return rules


def swap_elision_rule() -> Rule:
    """SWAP -> crossed wires. Exact, but moves the permutation onto the boundary."""
    rhs = Graph((Q, Q), (Q, Q))
    rhs.connect(out_port(INPUT_ID, 0), in_port(OUTPUT_ID, 1))
    rhs.connect(out_port(INPUT_ID, 1), in_port(OUTPUT_ID, 0))
    return Rule(Graph.from_circuit(_circ(2, (Op.SWAP, (0, 1)))), rhs, CANCEL, "swap->wires")


def standard_rules(elide_swaps: bool = False) -> list[Rule]:
    """Cancellation, merge and conjugation rules (plus SWAP elision if asked)."""
    rules = cancellation_rules() + merge_rules() + conjugation_rules()
    if elide_swaps:
        rules.append(swap_elision_rule())
    return rules


def _as_graph(member) -> Graph:
    return member if isinstance(member, Graph) else Graph.from_circuit(member)


def rules_from_equivalence_classes(classes: Iterable[Iterable], cost=None, priority: int = 0) -> list[Rule]:
    """
    One rule per non-representative member of each class.

    Args:
        classes: Iterable of classes, each an iterable of equivalent Circuits or Graphs
        cost: Cost selector picking the representative (cheapest, first on ties)
        priority: Priority given to every generated rule

    Members that cannot be used as patterns (e.g. the empty circuit) are skipped.
    Members of one class must share a boundary signature, else BoundaryMismatch.
    """
    cost = get_cost_function(cost)
    rules = []
    for k, members in enumerate(classes):
        graphs = [_as_graph(m) for m in members]
        if not graphs:
            continue
        rep = min(range(len(graphs)), key=lambda i: (cost(graphs[i]), i))
        for i, g in enumerate(graphs):
            if i == rep:
                continue
            rule = Rule(g, graphs[rep].copy(), priority, f"class{k}[{i}]->[{rep}]")
            try:
                check_rule(rule)
                decompose(g)
            except MalformedPattern as e:
                logger.debug("skipping %s: %s", rule.name, e)
                continue
            rules.append(rule)
    logger.debug("generated %d rules from equivalence classes", len(rules))
    return rules

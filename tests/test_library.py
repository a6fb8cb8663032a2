"""
Tests for the built-in rule sets.

Tests:
    - Every standard rule is an exact identity
    - Priorities: cancellation > merge > conjugation
    - Rules generated from equivalence classes
"""
import pytest
from tinyrewrite.ir import Circuit, Op
from tinyrewrite.graph import Graph
from tinyrewrite.automaton import compile_rules
from tinyrewrite.library import (
    CANCEL, MERGE, CONJUGATE, standard_rules, cancellation_rules, merge_rules, conjugation_rules,
    swap_elision_rule, rules_from_equivalence_classes,
)
from tinyrewrite.search import optimize
from tinyrewrite.simulator import graphs_equivalent
from tinyrewrite.errors import BoundaryMismatch


@pytest.mark.parametrize("rule", standard_rules(elide_swaps=True), ids=lambda r: r.name)
def test_standard_rules_are_identities(rule):
    assert graphs_equivalent(rule.pattern, rule.replacement)


def test_standard_rules_compile():
    rs = compile_rules(standard_rules(elide_swaps=True))
    assert len(rs) == len(standard_rules()) + 1


def test_priorities():
    assert {r.priority for r in cancellation_rules()} == {CANCEL}
    assert {r.priority for r in merge_rules()} == {MERGE}
    assert {r.priority for r in conjugation_rules()} == {CONJUGATE}
    assert CANCEL > MERGE > CONJUGATE


def test_symmetric_cz_cancels():
    res = optimize(Graph.from_circuit(Circuit(2).cz(0, 1).cz(1, 0)), standard_rules())
    assert len(res.graph) == 0


def test_swap_elision_removes_swaps():
    c = Circuit(3).swap(0, 1).h(0).swap(1, 2).cx(0, 2)
    res = optimize(Graph.from_circuit(c), [swap_elision_rule()], verify=True)
    assert res.graph.count_ops()[Op.SWAP] == 0
    assert res.verified


# =============================================================================
# Equivalence classes
# =============================================================================

def test_class_members_rewrite_to_cheapest():
    cls = [Circuit(1).h(0).x(0).h(0), Circuit(1).z(0), Circuit(1).h(0).y(0).y(0).x(0).h(0)]
    rules = rules_from_equivalence_classes([cls])
    assert len(rules) == 2
    assert all(len(r.replacement) == 1 for r in rules)
    assert [r.name for r in rules] == ["class0[0]->[1]", "class0[2]->[1]"]


def test_class_tie_keeps_first():
    rules = rules_from_equivalence_classes([[Circuit(1).x(0), Circuit(1).z(0)]])
    assert len(rules) == 1
    assert rules[0].replacement.count_ops() == {Op.X: 1}


def test_class_empty_member_skipped():
    rules = rules_from_equivalence_classes([[Circuit(1), Circuit(1).h(0).h(0)], []])
    assert len(rules) == 1
    assert len(rules[0].replacement) == 0
    # an empty member that is not the representative can't be a pattern
    assert rules_from_equivalence_classes([[Circuit(1), Circuit(1).h(0).h(0)]], cost=lambda g: 5 - len(g)) == []


def test_class_cost_selector():
    cls = [Circuit(2).cz(0, 1), Circuit(2).h(1).cx(0, 1).h(1)]
    by_gates = rules_from_equivalence_classes([cls])
    by_most = rules_from_equivalence_classes([cls], cost=lambda g: 10 - g.n_gates())
    assert by_gates[0].replacement.count_ops() == {Op.CZ: 1}
    assert by_most[0].replacement.count_ops() == {Op.H: 2, Op.CX: 1}


def test_class_boundary_mismatch():
    with pytest.raises(BoundaryMismatch):
        rules_from_equivalence_classes([[Circuit(1).h(0).h(0), Circuit(2)]])


def test_class_rules_optimise():
    rules = rules_from_equivalence_classes([[Circuit(1).h(0).x(0).h(0), Circuit(1).z(0)]], priority=5)
    res = optimize(Graph.from_circuit(Circuit(2).h(0).x(0).h(0).cx(0, 1)), rules, verify=True)
    assert res.graph.to_circuit().ops == Circuit(2).z(0).cx(0, 1).ops
    assert res.verified

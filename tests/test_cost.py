from tinyrewrite.ir import Circuit, Op
from tinyrewrite.graph import Graph
from tinyrewrite.pattern import Rule
from tinyrewrite.cost import (
    CostFunction, GateCount, TwoQubitCount, WeightedCost, Depth, CallableCost, get_cost_function,
)
import pytest


def _g(c: Circuit) -> Graph:
    return Graph.from_circuit(c)


def test_gate_count():
    assert GateCount()(_g(Circuit(2).h(0).cx(0, 1).x(1))) == 3


def test_gate_count_ignores_classical_plumbing(conditional_circuit):
    # READ_BIT and CONDITIONAL themselves are free, the conditioned X is not
    assert GateCount()(_g(conditional_circuit)) == 5


def test_gate_count_recurses(region_graph):
    assert GateCount()(region_graph) == 3


def test_two_qubit_count():
    assert TwoQubitCount()(_g(Circuit(3).h(0).cx(0, 1).ccx(0, 1, 2))) == 2


def test_weighted():
    g = _g(Circuit(3).h(0).cx(0, 1).ccx(0, 1, 2))
    assert WeightedCost()(g) == 41
    assert WeightedCost(one_q=0, two_q=1, three_q=1)(g) == 2
    with pytest.raises(ValueError):
        WeightedCost(one_q=-1)


def test_depth():
    cost = Depth()
    assert not cost.local
    assert cost(_g(Circuit(2).h(0).h(1).cx(0, 1))) == 2


def test_rule_gain():
    r = Rule.from_circuits(Circuit(2).h(1).cx(0, 1).h(1), Circuit(2).cz(0, 1))
    assert GateCount().rule_gain(r) == 2
    assert TwoQubitCount().rule_gain(r) == 0


def test_callable_wrapped():
    def n_h(g):
        return g.count_ops()[Op.H]
    cost = get_cost_function(n_h)
    assert isinstance(cost, CallableCost)
    assert cost.name == "n_h"
    assert cost(_g(Circuit(1).h(0).x(0).h(0))) == 2.0


def test_selectors():
    assert isinstance(get_cost_function(), GateCount)
    assert isinstance(get_cost_function("two_qubit"), TwoQubitCount)
    assert isinstance(get_cost_function("weighted"), WeightedCost)
    w = WeightedCost(2, 3, 4)
    assert get_cost_function(w) is w
    with pytest.raises(ValueError):
        get_cost_function("fidelity")
    with pytest.raises(TypeError):
        get_cost_function(3)


def test_base_class_abstract():
    with pytest.raises(NotImplementedError):
        CostFunction()(_g(Circuit(1).h(0)))

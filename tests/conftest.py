"""
Pytest fixtures for rule sets and circuits.
"""
import pytest
from tinyrewrite.ir import Circuit, Op, Q
from tinyrewrite.graph import INPUT_ID, OUTPUT_ID, Graph, in_port, out_port
from tinyrewrite.pattern import Rule
from tinyrewrite.automaton import compile_rules
from tinyrewrite.library import standard_rules


# =============================================================================
# Builders (test utilities)
# =============================================================================

def rule(lhs: Circuit, rhs: Circuit, priority: int = 0, name: str = "") -> Rule:
    return Rule.from_circuits(lhs, rhs, priority, name)


# =============================================================================
# Rule Sets
# =============================================================================

@pytest.fixture
def hh_rules():
    """Single rule: H·H -> identity."""
    return compile_rules([rule(Circuit(1).h(0).h(0), Circuit(1))])


@pytest.fixture
def hx_rules():
    """Single rule: H·X -> Z·H (two nodes to two nodes, used for chains)."""
    return compile_rules([rule(Circuit(1).h(0).x(0), Circuit(1).z(0).h(0))])


@pytest.fixture
def std_rules():
    """Built-in cancellation / merge / conjugation rules."""
    return compile_rules(standard_rules())


# =============================================================================
# Test Circuits
# =============================================================================

@pytest.fixture
def bell_circuit():
    """Bell state: H(0), CX(0,1)."""
    return Circuit(2).h(0).cx(0, 1)


@pytest.fixture
def redundant_circuit():
    """Bell preparation buried in cancelling pairs: optimises to H(0), CX(0,1)."""
    return (Circuit(2).x(1).h(0).h(0).h(0).x(1).s(0).sdg(0)
            .cx(0, 1).cx(0, 1).cx(0, 1).t(1).tdg(1))


@pytest.fixture
def conditional_circuit():
    """H·H before a measurement, then an X conditioned on the result."""
    c = Circuit(2, 1).h(0).h(0).x(0).measure(0, 0)
    with c.c_if(0):
        c.x(1)
    return c


@pytest.fixture
def region_graph():
    """Two qubits, one REGION node whose body holds H·H on wire 0."""
    body = Graph.from_circuit(Circuit(2).h(0).h(0).cx(0, 1))
    g = Graph((Q, Q), (Q, Q))
    r = g.add_node(Op.REGION, body=body)
    for i in range(2):
        g.connect(out_port(INPUT_ID, i), in_port(r, i))
        g.connect(out_port(r, i), in_port(OUTPUT_ID, i))
    return g

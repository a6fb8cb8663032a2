"""
Tests for the optimisation report.
"""
import pytest
from tinyrewrite.ir import Circuit
from tinyrewrite.graph import Graph
from tinyrewrite.report import IterationMetrics, OptimizeReport, collect_metrics
from tinyrewrite.rewrite import RewriteRecord
from tinyrewrite.search import optimize


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def report():
    log = [RewriteRecord(0, "h,h->", 2, (2, 3), (), (4,)),
           RewriteRecord(0, "h,h->", 5, (5, 6), (), (7,), (9,)),
           RewriteRecord(1, "", 8, (8,), (10,), (10,))]
    its = [IterationMetrics(1, 3, 4.0, 4, 3)]
    return OptimizeReport("greedy", "gates", 2, "fixpoint", 8.0, 4.0, 8, 4, 0.01, its, log, True)


# =============================================================================
# Text output
# =============================================================================

class TestToText:

    def test_summary_only(self, report):
        text = report.to_text(1)
        assert "TinyRewrite Optimisation Report" in text
        assert "Cost:   8 -> 4" in text
        assert "Verify: ok" in text
        assert "ITERATIONS" not in text

    def test_iterations_and_rules(self, report):
        text = report.to_text(2)
        assert "ITERATIONS" in text
        assert "h,h->" in text and "x2" in text
        assert "REWRITES" not in text

    def test_rewrite_log(self, report):
        text = report.to_text(3)
        assert "REWRITES" in text
        assert "h,h-> @ 9:5" in text
        assert "1 @ root:8" in text

    def test_unverified_omits_line(self, report):
        report.verified = None
        assert "Verify" not in report.to_text(1)

    def test_failed_verify(self, report):
        report.verified = False
        assert "Verify: FAILED" in report.to_text(1)


def test_record_str():
    rec = RewriteRecord(3, "s,s->z", 4, (4, 5), (9,), (9,), (2, 7))
    assert str(rec) == "s,s->z @ 2/7:4 -[4, 5] +[9]"


def test_collect_metrics():
    g = Graph.from_circuit(Circuit(2).h(0).cx(0, 1))
    m = collect_metrics(g, 1, 2, 2.0)
    assert (m.iteration, m.rewrites, m.cost, m.gates, m.depth) == (1, 2, 2.0, 2, 2)


def test_optimize_attaches_report(std_rules, redundant_circuit):
    res = optimize(Graph.from_circuit(redundant_circuit), std_rules)
    r = res.report
    assert r.status == "fixpoint"
    assert (r.initial_gates, r.final_gates) == (12, 2)
    assert r.log == res.log
    # metrics are only collected when something is printed
    assert r.iterations == []


def test_empty_graph_report(std_rules, capsys):
    optimize(Graph.from_circuit(Circuit(1)), std_rules, verbosity=2)
    out = capsys.readouterr().out
    assert "Gates:  0 -> 0" in out
    assert "RULES" not in out

"""Optimisation report for explainability."""
from __future__ import annotations
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .graph import Graph
    from .rewrite import RewriteRecord


@dataclass
class IterationMetrics:
    """Metrics captured after a single batch (greedy) or expansion (bounded)."""
    iteration: int
    rewrites: int
    cost: float
    gates: int
    depth: int


@dataclass
class OptimizeReport:
    """Optimisation report with per-iteration metrics."""
    mode: str
    cost: str
    n_rules: int
    status: str
    initial_cost: float
    final_cost: float
    initial_gates: int
    final_gates: int
    elapsed: float
    iterations: list[IterationMetrics] = field(default_factory=list)
    log: list[RewriteRecord] = field(default_factory=list)
    verified: bool | None = None

    def to_text(self, verbosity: int = 2) -> str:
        lines = [
            "=" * 40, "  TinyRewrite Optimisation Report", "=" * 40, "",
            "SUMMARY",
            f"  Mode:   {self.mode} ({self.n_rules} rules, cost={self.cost})",
            f"  Cost:   {self.initial_cost:g} -> {self.final_cost:g}",
            f"  Gates:  {self.initial_gates} -> {self.final_gates}",
            f"  Status: {self.status} after {len(self.iterations)} iterations, {len(self.log)} rewrites ({self.elapsed:.3f}s)",
        ]
        if self.verified is not None: lines.append(f"  Verify: {'ok' if self.verified else 'FAILED'}")
        if verbosity < 2: return "\n".join(lines)

        lines += ["", "ITERATIONS", "  Iter  Rewrites      Cost  Gates  Depth", "  " + "-" * 37]
        lines += [f"  {m.iteration:>4} {m.rewrites:>9} {m.cost:>9g} {m.gates:>6} {m.depth:>6}" for m in self.iterations]

        if self.log:
            lines += ["", "RULES"]
            counts = Counter(r.rule_name or str(r.rule) for r in self.log)
            lines += [f"  {name:<24} x{n}" for name, n in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))]

        if verbosity >= 3 and self.log:
            lines += ["", "REWRITES"] + [f"  {r}" for r in self.log]
        return "\n".join(lines)


def collect_metrics(graph: Graph, iteration: int, rewrites: int, cost: float) -> IterationMetrics:
    return IterationMetrics(iteration, rewrites, cost, graph.n_gates(), graph.depth())

"""
Main optimisation entry point.

Two search modes over the same matcher and rewriter:
1. greedy: apply non-overlapping improving batches until nothing improves
2. bounded: best-first search over whole graphs within an iteration/time budget

optimize() works on a copy of the caller's graph, optimises nested regions
deepest-first, then the top level, and returns the result with its rewrite log.
"""
from __future__ import annotations

import heapq
import itertools
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from enum import Enum

from .automaton import RuleSet, compile_rules
from .cost import CostFunction, get_cost_function
from .errors import StaleMatch
from .graph import Graph
from .matcher import Match, Matcher, neighbourhood
from .report import IterationMetrics, OptimizeReport, collect_metrics
from .rewrite import Rewriter, RewriteRecord

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

_MODES = ("greedy", "bounded")


@dataclass
class SearchConfig:
    """
    Search settings.

    Args:
        cost: Selector name ("gates", "two_qubit", "weighted", "depth"), a CostFunction or a callable.
            Non-local costs are always evaluated on the whole graph, also while a nested body is optimised
        mode: "greedy" (local fixpoint) or "bounded" (best-first within the budget)
        max_iterations: Batches (greedy) or expansions (bounded) before stopping
        timeout: Wall-clock seconds before stopping
        n_threads: Worker threads for matching and planning
        incremental: Re-match only around rewritten nodes between batches
        recurse: Also optimise the bodies of REGION/CONDITIONAL nodes
        queue_capacity: Bounded mode queue size; truncated to half when reached
        verify: Check unitary equivalence of input and output
        verbosity: 0=silent, 1=summary, 2=per-iteration metrics, 3=full rewrite log
    """
    cost: object = "gates"
    mode: str = "greedy"
    max_iterations: int | None = None
    timeout: float | None = None
    n_threads: int = 1
    incremental: bool = True
    recurse: bool = True
    queue_capacity: int = 10_000
    verify: bool = False
    verbosity: int = 0

    def __post_init__(self):
        if self.mode not in _MODES:
            raise ValueError(f"mode must be one of {_MODES}, got {self.mode!r}")
        if self.mode == "bounded" and self.max_iterations is None and self.timeout is None:
            raise ValueError("bounded search needs max_iterations or timeout")
        if self.max_iterations is not None and self.max_iterations < 0:
            raise ValueError("max_iterations must be >= 0")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")
        if self.n_threads < 1:
            raise ValueError("n_threads must be >= 1")
        if self.queue_capacity < 2:
            raise ValueError("queue_capacity must be >= 2")
        if not 0 <= self.verbosity <= 3:
            raise ValueError("verbosity must be 0..3")


class OptimizeStatus(Enum):
    FIXPOINT = "fixpoint"                  # no improving match left
    ITERATION_BUDGET = "iteration_budget"
    TIMEOUT = "timeout"
    EXHAUSTED = "exhausted"                # bounded search ran out of candidates


@dataclass
class OptimizeResult:
    graph: Graph
    log: list[RewriteRecord]
    status: OptimizeStatus
    initial_cost: float
    final_cost: float
    iterations: int
    verified: bool | None = None
    report: OptimizeReport | None = field(default=None, repr=False)


class _Budget:
    def __init__(self, max_iterations: int | None, timeout: float | None):
        self.max_iterations = max_iterations
        self.timeout = timeout
        self.start = time.perf_counter()
        self.iterations = 0

    @property
    def elapsed(self) -> float: return time.perf_counter() - self.start

    def exceeded(self) -> OptimizeStatus | None:
        if self.max_iterations is not None and self.iterations >= self.max_iterations:
            return OptimizeStatus.ITERATION_BUDGET
        if self.timeout is not None and self.elapsed >= self.timeout:
            return OptimizeStatus.TIMEOUT
        return None


class _Run:
    """State of one optimize() call. Each call owns its log."""

    def __init__(self, ruleset: RuleSet, cost: CostFunction, config: SearchConfig, root: Graph):
        self.ruleset = ruleset
        self.cost = cost
        self.config = config
        self.root = root
        self.matcher = Matcher(ruleset, config.n_threads)
        self.rewriter = Rewriter(ruleset, self.matcher)
        self.budget = _Budget(config.max_iterations, config.timeout)
        self.log: list[RewriteRecord] = []
        self.metrics: list[IterationMetrics] = []
        self.pool: ThreadPoolExecutor | None = None
        self.gain = [cost.rule_gain(r) for r in ruleset.rules] if cost.local else None

    def _record(self, g: Graph, rewrites: int):
        if self.config.verbosity > 0:
            self.metrics.append(collect_metrics(g, self.budget.iterations, rewrites, self.cost(g)))

    def _score(self, g: Graph, path: tuple[int, ...]) -> float:
        """Cost of the root graph with the body at path taken to be g."""
        if not path or self.cost.local:
            return self.cost(g)
        root = self.root.copy()
        body = root
        for nid in path:
            body = body.node(nid).body
        body._become(g.copy())
        return self.cost(root)

    # Greedy --------------------------------------------------------------------

    def _select(self, g: Graph, matches: list[Match], path: tuple[int, ...]) -> list[Match]:
        rank = self.ruleset.rank
        if self.gain is not None:
            scored = [(self.gain[m.rule], m) for m in matches if self.gain[m.rule] > 0]
        else:
            # Non-local cost: gains don't add up, so try each match and take the single best
            current = self._score(g, path)
            scored = []
            for m in matches:
                trial = g.copy()
                try:
                    self.rewriter.apply(trial, m)
                except StaleMatch:
                    continue
                gain = current - self._score(trial, path)
                if gain > 0: scored.append((gain, m))
        scored.sort(key=lambda s: (-s[0], rank[s[1].rule], s[1].root, s[1].nodes))
        if self.gain is None:
            return [m for _, m in scored[:1]]
        claimed: set[int] = set()
        batch = []
        for _, m in scored:
            if claimed.isdisjoint(m.nodes):
                batch.append(m)
                claimed.update(m.nodes)
        return batch

    def _try_plan(self, g: Graph, m: Match):
        try:
            return self.rewriter.plan(g, m)
        except StaleMatch:
            return None

    def _apply_batch(self, g: Graph, batch: list[Match]) -> tuple[list[RewriteRecord], list[Match]]:
        if self.pool is not None and len(batch) > 1:
            plans = list(self.pool.map(lambda m: self._try_plan(g, m), batch))
        else:
            plans = [self._try_plan(g, m) for m in batch]
        records, stale = [], []
        for m, plan in zip(batch, plans):
            if plan is None:
                stale.append(m)
                continue
            try:
                records.append(self.rewriter.commit(g, plan))
            except StaleMatch:
                stale.append(m)
        return records, stale

    def greedy(self, g: Graph, path: tuple[int, ...]) -> OptimizeStatus | None:
        """Run to a local fixpoint. Returns a budget status if stopped early."""
        incremental = self.config.incremental
        by_anchor: dict[int, list[Match]] = {}

        def rescan():
            by_anchor.clear()
            for m in self.matcher.find_matches(g):
                by_anchor.setdefault(m.root, []).append(m)

        rescan()
        fresh = True
        while True:
            matches = [m for a in sorted(by_anchor) for m in by_anchor[a]]
            batch = self._select(g, matches, path)
            if not batch:
                if fresh:
                    return None
                rescan()
                fresh = True
                continue
            stop = self.budget.exceeded()
            if stop is not None:
                return stop

            records, stale = self._apply_batch(g, batch)
            for m in stale:
                logger.debug("dropping stale match %s", m)
                by_anchor[m.root].remove(m)
            if not records:
                continue
            self.budget.iterations += 1
            self.log.extend(replace(r, path=path) for r in records)
            self._record(self.root, len(records))
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug("batch %d at %s: %d rewrites", self.budget.iterations, path or "root", len(records))

            if incremental:
                touched = {n for r in records for n in r.touched}
                near = neighbourhood(g, touched, self.ruleset.radius)
                dirty = set(near) | {n for r in records for n in r.removed}
                for a in [a for a in by_anchor if a in dirty]:
                    del by_anchor[a]
                for m in self.matcher.find_matches(g, near):
                    by_anchor.setdefault(m.root, []).append(m)
                fresh = False
            else:
                rescan()

    # Bounded -------------------------------------------------------------------

    def best_first(self, g: Graph, path: tuple[int, ...]) -> OptimizeStatus:
        """Best-first search from g; g is replaced by the cheapest graph seen."""
        capacity = self.config.queue_capacity
        start_cost = self._score(g, path)
        best, best_cost, best_log = g, start_cost, []
        seq = itertools.count()
        queue = [(start_cost, next(seq), g, [])]
        seen = {g.circuit_hash()}
        status = OptimizeStatus.EXHAUSTED
        while queue:
            stop = self.budget.exceeded()
            if stop is not None:
                status = stop
                break
            _, _, cur, history = heapq.heappop(queue)
            self.budget.iterations += 1
            for m in self.matcher.find_matches(cur):
                nxt = cur.copy()
                try:
                    rec = self.rewriter.apply(nxt, m)
                except StaleMatch:
                    continue
                h = nxt.circuit_hash()
                if h in seen:
                    continue
                seen.add(h)
                c = self._score(nxt, path)
                hist = history + [replace(rec, path=path)]
                if c < best_cost:
                    best, best_cost, best_log = nxt, c, hist
                heapq.heappush(queue, (c, next(seq), nxt, hist))
            if len(queue) >= capacity:
                queue = heapq.nsmallest(capacity // 2, queue)
                heapq.heapify(queue)
                logger.debug("queue truncated to %d", len(queue))
            self._record(cur, len(history))
        if best is not g:
            g._become(best)
        self.log.extend(best_log)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("best-first at %s: %d expansions, %d seen, cost %g -> %g",
                         path or "root", self.budget.iterations, len(seen), start_cost, best_cost)
        return status


def optimize(graph: Graph, rules, config: SearchConfig | None = None, **overrides) -> OptimizeResult:
    """
    Optimise graph with rules. The input graph is never modified.

    Args:
        graph: Well-formed input graph
        rules: A compiled RuleSet, or anything compile_rules() accepts
        config: SearchConfig; keyword overrides replace individual fields
    """
    config = replace(config, **overrides) if config is not None else SearchConfig(**overrides)
    ruleset = rules if isinstance(rules, RuleSet) else compile_rules(rules)
    cost = get_cost_function(config.cost)

    work = graph.copy()
    run = _Run(ruleset, cost, config, work)
    initial_cost = cost(work)
    initial_gates = work.n_gates()
    logger.debug("optimize: %d ops, %d rules, mode=%s, cost=%s (%g)",
                 len(work), len(ruleset), config.mode, cost.name, initial_cost)

    levels = [(path, g) for path, g in work.walk()] if config.recurse else [((), work)]
    levels.sort(key=lambda pg: -len(pg[0]))  # deepest first, stable within a level
    status = OptimizeStatus.FIXPOINT if config.mode == "greedy" else OptimizeStatus.EXHAUSTED
    if config.n_threads > 1:
        run.pool = ThreadPoolExecutor(max_workers=config.n_threads)
    try:
        for path, g in levels:
            if config.mode == "greedy":
                stop = run.greedy(g, path)
            else:
                stop = run.best_first(g, path)
                stop = None if stop == OptimizeStatus.EXHAUSTED else stop
            if stop is not None:
                status = stop
                logger.info("optimize stopped (%s) after %d iterations", stop.value, run.budget.iterations)
                break
    finally:
        if run.pool is not None:
            run.pool.shutdown()

    final_cost = cost(work)
    verified = None
    if config.verify:
        import warnings
        from .simulator import graphs_equivalent
        try:
            verified = graphs_equivalent(graph, work)
        except ValueError as e:
            warnings.warn(f"Equivalence check skipped: {e}")
        else:
            if not verified:
                warnings.warn("Optimised graph failed equivalence check")

    report = OptimizeReport(config.mode, cost.name, len(ruleset), status.value, initial_cost, final_cost,
                            initial_gates, work.n_gates(), run.budget.elapsed, run.metrics, run.log, verified)
    logger.debug("optimize: %s, %d rewrites, cost %g -> %g", status.value, len(run.log), initial_cost, final_cost)
    if config.verbosity > 0:
        print(report.to_text(config.verbosity))
    return OptimizeResult(work, run.log, status, initial_cost, final_cost, run.budget.iterations, verified, report)

"""
Pattern matching of a compiled RuleSet against a host graph.

Contains:
    - Match: binding of one rule's pattern onto host nodes and ports
    - Matcher: full, anchored and incremental matching, liveness checks

Matching only reads the host graph. Output order is fixed: anchors by node id,
then rules by priority rank, then bindings.
"""
from __future__ import annotations

import logging
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, Iterator

from .automaton import RuleSet, State
from .graph import INPUT_ID, OUTPUT_ID, Direction, Graph, Port, in_port, out_port
from .pattern import Follow, PatternInfo, params_match

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


@dataclass(frozen=True)
class Match:
    """Binding of rule `rule`'s pattern variables to host nodes.

    nodes[v] is the host node bound to pattern variable v. inputs[i] holds the
    host input ports fed by pattern boundary input i, outputs[j] the host output
    port behind pattern boundary output j.
    """
    rule: int
    root: int
    nodes: tuple[int, ...]
    inputs: tuple[tuple[Port, ...], ...]
    outputs: tuple[Port, ...]

    @property
    def node_set(self) -> frozenset[int]: return frozenset(self.nodes)

    def overlaps(self, other: Match) -> bool:
        return not self.node_set.isdisjoint(other.nodes)

    def node_map(self, ruleset: RuleSet) -> dict[int, int]:
        """Pattern node id -> host node id."""
        return dict(zip(ruleset.patterns[self.rule].nodes, self.nodes))


class _Ctx:
    """Per-scan read cache. Topological ranks are fetched from the graph on first need."""
    def __init__(self, graph: Graph):
        self.graph = graph
        self._rank: dict[int, int] | None = None
        self._lock = threading.Lock()

    @property
    def rank(self) -> dict[int, int]:
        with self._lock:
            if self._rank is None:
                self._rank = self.graph.topological_rank()
            return self._rank


def _advance(graph: Graph, con, binding: list[int]) -> Iterator[list[int]]:
    h = binding[con.var]
    if isinstance(con, Follow):
        if con.direction == Direction.IN:
            src = graph.source(in_port(h, con.index))
            cands = [src] if src is not None else []
        else:
            cands = graph.targets(out_port(h, con.index))
        for p in cands:
            if p.index != con.to_index or p.node in (INPUT_ID, OUTPUT_ID) or p.node in binding:
                continue
            node = graph.node(p.node)
            if node.op == con.op and params_match(con.params, node.params):
                yield binding + [p.node]
    else:
        other = binding[con.other]
        if con.direction == Direction.IN:
            ok = graph.source(in_port(h, con.index)) == out_port(other, con.to_index)
        else:
            ok = graph.source(in_port(other, con.to_index)) == out_port(h, con.index)
        if ok:
            yield binding


def _walk(graph: Graph, state: State, binding: list[int], out: list):
    for rid in state.accepts:
        out.append((rid, tuple(binding)))
    for con, child in state.children.items():
        for ext in _advance(graph, con, binding):
            _walk(graph, child, ext, out)


def _is_convex(ctx: _Ctx, nodes: frozenset[int]) -> bool:
    """No path leaves the node set and comes back into it."""
    if len(nodes) < 2:
        return True
    g, rank = ctx.graph, ctx.rank
    limit = max(rank[n] for n in nodes)
    stack = [s for n in nodes for s in g.successors(n) if s not in nodes and rank[s] < limit]
    seen = set()
    while stack:
        x = stack.pop()
        if x in seen: continue
        seen.add(x)
        for s in g.successors(x):
            if s in nodes: return False
            if s not in seen and rank[s] < limit: stack.append(s)
    return True


def _build(ctx: _Ctx, info: PatternInfo, rid: int, root: int, binding: tuple[int, ...]) -> Match | None:
    """Check boundary consistency and convexity; None if the binding can't be rewritten."""
    g = ctx.graph
    node_set = frozenset(binding)
    inputs = []
    for ports in info.inputs:
        hp = tuple(in_port(binding[v], i) for v, i in ports)
        srcs = {g.source(p) for p in hp}
        if len(srcs) != 1: return None
        src = srcs.pop()
        if src is None or src.node in node_set: return None
        inputs.append(hp)
    outputs = tuple(out_port(binding[v], i) for v, i in info.outputs)
    exposed = set(outputs)
    for v, h in enumerate(binding):
        for i in range(info.out_arity[v]):
            p = out_port(h, i)
            if p not in exposed and any(t.node not in node_set for t in g.targets(p)):
                return None
    if not _is_convex(ctx, node_set):
        return None
    return Match(rid, root, binding, tuple(inputs), outputs)


class Matcher:
    """Finds every rewrite opportunity of a RuleSet in a host graph."""

    def __init__(self, ruleset: RuleSet, n_threads: int = 1):
        self.ruleset = ruleset
        self.n_threads = n_threads

    def _rooted(self, ctx: _Ctx, anchor: int) -> list[Match]:
        g, rs = ctx.graph, self.ruleset
        node = g.node(anchor)
        found: list[tuple[int, tuple[int, ...]]] = []
        for con, child in rs.root.children.items():
            if con.op == node.op and params_match(con.params, node.params):
                _walk(g, child, [anchor], found)
        found.sort(key=lambda f: (rs.rank[f[0]], f[1]))
        out = []
        for rid, binding in found:
            m = _build(ctx, rs.patterns[rid], rid, anchor, binding)
            if m is not None: out.append(m)
        return out

    def find_matches(self, graph: Graph, anchors: Iterable[int] | None = None) -> list[Match]:
        """All matches anchored at the given nodes (default: every operation)."""
        kinds = self.ruleset.root_kinds
        cand = graph.op_nodes() if anchors is None else sorted(set(anchors))
        cand = [a for a in cand if a in graph and a > OUTPUT_ID and graph.op(a) in kinds]
        ctx = _Ctx(graph)
        if self.n_threads > 1 and len(cand) > 1:
            with ThreadPoolExecutor(max_workers=self.n_threads) as pool:
                chunks = list(pool.map(lambda a: self._rooted(ctx, a), cand))
        else:
            chunks = [self._rooted(ctx, a) for a in cand]
        matches = [m for c in chunks for m in c]
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("matched %d anchors -> %d matches", len(cand), len(matches))
        return matches

    def find_matches_near(self, graph: Graph, touched: Iterable[int]) -> list[Match]:
        """Re-match only the neighbourhood a rewrite could have affected."""
        return self.find_matches(graph, neighbourhood(graph, touched, self.ruleset.radius))

    def find_first(self, graph: Graph) -> Match | None:
        """First match in deterministic order, or None."""
        kinds = self.ruleset.root_kinds
        ctx = _Ctx(graph)
        for a in graph.op_nodes():
            if graph.op(a) in kinds:
                found = self._rooted(ctx, a)
                if found: return found[0]
        return None

    def is_live(self, graph: Graph, match: Match) -> bool:
        """Does match still describe a rewritable region of graph?"""
        if any(n not in graph for n in match.nodes):
            return False
        info = self.ruleset.patterns[match.rule]
        root = info.constraints[0]
        node = graph.node(match.nodes[0])
        if node.op != root.op or not params_match(root.params, node.params):
            return False
        binding = [match.nodes[0]]
        for con in info.constraints[1:]:
            if isinstance(con, Follow):
                want = match.nodes[len(binding)]
                if not any(b[-1] == want for b in _advance(graph, con, binding)):
                    return False
                binding.append(want)
            elif not any(True for _ in _advance(graph, con, binding)):
                return False
        return _build(_Ctx(graph), info, match.rule, match.root, match.nodes) == match


def neighbourhood(graph: Graph, nodes: Iterable[int], radius: int) -> list[int]:
    """Operation nodes within radius wire hops of any of nodes (removed ids ignored)."""
    start = [n for n in nodes if n in graph and n > OUTPUT_ID]
    dist = {n: 0 for n in start}
    queue = deque(start)
    while queue:
        n = queue.popleft()
        if dist[n] >= radius: continue
        for m in graph.neighbors(n):
            if m > OUTPUT_ID and m not in dist:
                dist[m] = dist[n] + 1
                queue.append(m)
    return sorted(dist)


def find_matches(ruleset: RuleSet, graph: Graph, anchors: Iterable[int] | None = None,
                 n_threads: int = 1) -> list[Match]:
    return Matcher(ruleset, n_threads).find_matches(graph, anchors)

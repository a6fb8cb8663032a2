"""
Applying matches: plan a rewrite (read-only), then commit it (single writer).

Planning resolves the host ports on the match boundary. Committing removes the
matched nodes, inserts a fresh copy of the replacement and reconnects the
boundary wires by position. A failed commit leaves the graph as it was.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .automaton import RuleSet
from .errors import BoundaryMismatch, CycleDetected, RewriteUnsound, StaleMatch, StructuralError
from .graph import INPUT_ID, OUTPUT_ID, Graph, Node, Port, Wire, in_port, out_port
from .matcher import Match, Matcher

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


@dataclass(frozen=True)
class RewritePlan:
    match: Match
    sources: tuple[Port, ...]                 # host out-port feeding each boundary input
    consumers: tuple[tuple[Port, ...], ...]   # host in-ports fed by each boundary output
    version: int = field(default=-1, compare=False)  # graph.version when planned


@dataclass(frozen=True)
class RewriteRecord:
    """One committed rewrite, as it appears in an optimisation log."""
    rule: int
    rule_name: str
    root: int
    removed: tuple[int, ...]
    inserted: tuple[int, ...]
    touched: tuple[int, ...]
    path: tuple[int, ...] = ()

    def __str__(self):
        where = "/".join(map(str, self.path)) or "root"
        return f"{self.rule_name or self.rule} @ {where}:{self.root} -{list(self.removed)} +{list(self.inserted)}"


class Rewriter:
    def __init__(self, ruleset: RuleSet, matcher: Matcher | None = None):
        self.ruleset = ruleset
        self.matcher = matcher or Matcher(ruleset)

    def plan(self, graph: Graph, match: Match) -> RewritePlan:
        """Resolve boundary ports of a live match. Raises StaleMatch, BoundaryMismatch."""
        version = graph.version
        if not self.matcher.is_live(graph, match):
            raise StaleMatch(f"match of rule {match.rule} at node {match.root} no longer holds")
        rule = self.ruleset[match.rule]
        sources = tuple(graph.source(ports[0]) for ports in match.inputs)
        inside = match.node_set
        consumers = tuple(tuple(t for t in graph.targets(p) if t.node not in inside) for p in match.outputs)
        got = tuple(graph.port_type(s) for s in sources)
        if got != rule.replacement.inputs:
            raise BoundaryMismatch(f"replacement of {rule.name or match.rule} expects "
                                   f"{[t.name for t in rule.replacement.inputs]}, host has {[t.name for t in got]}")
        return RewritePlan(match, sources, consumers, version)

    def commit(self, graph: Graph, plan: RewritePlan) -> RewriteRecord:
        """Apply a plan. Re-plans (or raises StaleMatch) if the graph moved on since planning."""
        with graph.lock:
            match = plan.match
            if graph.version != plan.version:
                fresh = self.plan(graph, match)
                if fresh != plan:
                    logger.debug("boundary of %s moved since planning, re-planned", match)
                plan = fresh
            rule = self.ruleset[match.rule]
            removed: list[tuple[Node, list[Wire]]] = []
            inserted: list[int] = []
            try:
                for nid in match.nodes:
                    ws = graph.incident_wires(nid)
                    removed.append((graph.remove_node(nid, cascade=True), ws))
                _splice(graph, rule.replacement, plan, inserted)
                _check_acyclic(graph, plan, inserted)
            except StructuralError as e:
                _rollback(graph, plan, removed, inserted)
                raise RewriteUnsound(f"rule {rule.name or match.rule} at node {match.root}: {e}") from e

            near = {p.node for p in plan.sources} | {c.node for cs in plan.consumers for c in cs}
            touched = sorted((set(inserted) | near) - {INPUT_ID, OUTPUT_ID})
            rec = RewriteRecord(match.rule, rule.name, match.root, tuple(match.nodes), tuple(inserted), tuple(touched))
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("rewrite %s", rec)
        return rec

    def apply(self, graph: Graph, match: Match) -> RewriteRecord:
        return self.commit(graph, self.plan(graph, match))


def _splice(graph: Graph, repl: Graph, plan: RewritePlan, inserted: list[int]):
    ids: dict[int, int] = {}
    for rid in repl.op_nodes():
        node = repl.node(rid)
        body = node.body.copy() if node.body is not None else None
        ids[rid] = graph.add_node(node.op, node.params, body)
        inserted.append(ids[rid])
    for w in repl.wires():
        srcs = [plan.sources[w.src.index]] if w.src.node == INPUT_ID else [out_port(ids[w.src.node], w.src.index)]
        dsts = plan.consumers[w.dst.index] if w.dst.node == OUTPUT_ID else (in_port(ids[w.dst.node], w.dst.index),)
        for s in srcs:
            for d in dsts:
                graph.connect(s, d)


def _check_acyclic(graph: Graph, plan: RewritePlan, inserted: list[int]):
    """Look for a cycle through the rewritten region (3-colour DFS from the new wires)."""
    start = set(inserted) | {c.node for cs in plan.consumers for c in cs}
    colour: dict[int, int] = {}
    for s in sorted(start):
        if colour.get(s): continue
        stack = [(s, iter(graph.successors(s)))]
        colour[s] = 1
        while stack:
            n, it = stack[-1]
            nxt = next(it, None)
            if nxt is None:
                colour[n] = 2
                stack.pop()
            elif colour.get(nxt) == 1:
                raise CycleDetected(f"rewrite closes a cycle through node {nxt}")
            elif not colour.get(nxt):
                colour[nxt] = 1
                stack.append((nxt, iter(graph.successors(nxt))))


def _rollback(graph: Graph, plan: RewritePlan, removed: list[tuple[Node, list[Wire]]], inserted: list[int]):
    for nid in inserted:
        if nid in graph:
            graph.remove_node(nid, cascade=True)
    # pass-through wires run straight from a source to a consumer
    for c in {c for cs in plan.consumers for c in cs}:
        w = graph.in_wire(c)
        if w is not None and w.src in plan.sources:
            graph.disconnect(w)
    for node, _ in removed:
        graph._insert(node)
        if node.body is not None: node.body._owner = node
    for _, ws in removed:
        for w in ws:
            if graph.in_wire(w.dst) != w:
                graph.connect(w.src, w.dst)


def plan_rewrite(ruleset: RuleSet, graph: Graph, match: Match) -> RewritePlan:
    return Rewriter(ruleset).plan(graph, match)


def commit_rewrite(ruleset: RuleSet, graph: Graph, plan: RewritePlan) -> RewriteRecord:
    return Rewriter(ruleset).commit(graph, plan)


def apply_rewrite(ruleset: RuleSet, graph: Graph, match: Match) -> RewriteRecord:
    """Plan and commit one match."""
    return Rewriter(ruleset).apply(graph, match)

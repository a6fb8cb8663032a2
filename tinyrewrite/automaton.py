"""Rule compilation: merge every pattern's constraint sequence into one decision trie.

A single walk of the trie from a host anchor advances all patterns that agree so
far and only branches where their constraints differ. The compiled RuleSet is
immutable and shared by every matching run over any number of graphs.
"""
from __future__ import annotations

import logging
import pickle
from collections.abc import Iterable

from .ir import Op
from .pattern import Constraint, PatternInfo, Root, Rule, check_rule, decompose

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class State:
    """Trie node. accepts holds rule indices in priority order."""
    __slots__ = ('children', 'accepts')

    def __init__(self):
        self.children: dict[Constraint, State] = {}
        self.accepts: tuple[int, ...] = ()


class RuleSet:
    """Compiled, read-only matching automaton for a collection of rules."""

    def __init__(self, rules: Iterable[Rule]):
        self.rules: tuple[Rule, ...] = tuple(rules)
        for rule in self.rules:
            check_rule(rule)
        self.patterns: tuple[PatternInfo, ...] = tuple(decompose(r.pattern) for r in self.rules)
        # Higher priority first, then registration order
        order = sorted(range(len(self.rules)), key=lambda i: (-self.rules[i].priority, i))
        self.rank: tuple[int, ...] = tuple(order.index(i) for i in range(len(self.rules)))

        self.root = State()
        accepts: dict[int, list[int]] = {}
        n_states = 1
        for rid, info in enumerate(self.patterns):
            state = self.root
            for con in info.constraints:
                nxt = state.children.get(con)
                if nxt is None:
                    nxt = state.children[con] = State()
                    n_states += 1
                state = nxt
            accepts.setdefault(id(state), []).append(rid)
            state.accepts = tuple(sorted(accepts[id(state)], key=lambda r: self.rank[r]))
        self.n_states = n_states
        self.root_kinds: frozenset[Op] = frozenset(c.op for c in self.root.children if isinstance(c, Root))
        self.radius: int = max((p.size for p in self.patterns), default=0)
        logger.debug("compiled %d rules into %d states (naive %d)", len(self.rules), n_states,
                     1 + sum(len(p.constraints) for p in self.patterns))

    def __len__(self) -> int: return len(self.rules)
    def __getitem__(self, rid: int) -> Rule: return self.rules[rid]

    def __repr__(self):
        return f"RuleSet({len(self.rules)} rules, {self.n_states} states)"

    def save(self, filepath: str):
        """Write the compiled set to filepath so it can be reused without recompiling."""
        with open(filepath, 'wb') as f:
            pickle.dump(self, f)
        logger.debug("saved %r to %s", self, filepath)

    @staticmethod
    def load(filepath: str) -> RuleSet:
        """Read a set written by save(). Only load files you trust."""
        with open(filepath, 'rb') as f:
            ruleset = pickle.load(f)
        if not isinstance(ruleset, RuleSet):
            raise TypeError(f"{filepath} holds a {type(ruleset).__name__}, not a RuleSet")
        return ruleset


def compile_rules(rules: Iterable) -> RuleSet:
    """Compile rules into a RuleSet.

    Accepts Rule objects or (pattern, replacement[, priority]) tuples. Raises
    MalformedPattern or BoundaryMismatch on the first bad rule.
    """
    out = []
    for r in rules:
        if isinstance(r, Rule):
            out.append(r)
        else:
            pattern, replacement, *rest = r
            out.append(Rule(pattern, replacement, *rest))
    return RuleSet(out)

"""
TinyRewrite - A tiny pattern-based quantum circuit rewrite engine
"""

from .ir import Circuit, Op, Operation, WireType
from .graph import Graph, Node, Port, Wire, Direction, in_port, out_port, INPUT_ID, OUTPUT_ID
from .serial import graph_from_dict, graph_to_dict, dumps, loads
from .pattern import Rule
from .automaton import RuleSet, compile_rules
from .matcher import Match, Matcher, find_matches, neighbourhood
from .rewrite import Rewriter, RewritePlan, RewriteRecord, plan_rewrite, commit_rewrite, apply_rewrite
from .cost import CostFunction, GateCount, TwoQubitCount, WeightedCost, Depth, CallableCost, get_cost_function
from .search import SearchConfig, OptimizeResult, OptimizeStatus, optimize
from .library import standard_rules, rules_from_equivalence_classes
from .report import OptimizeReport
from .errors import (
    RewriteEngineError, StructuralError, TypeMismatch, PortOccupied, NodeHasDependents,
    CycleDetected, DanglingWire, RuleError, MalformedPattern, BoundaryMismatch,
    StaleMatch, RewriteUnsound, IngestMalformed
)

__all__ = [
    # Core IR
    "Circuit",
    "Op",
    "Operation",
    "WireType",
    # Graph model
    "Graph",
    "Node",
    "Port",
    "Wire",
    "Direction",
    "in_port",
    "out_port",
    "INPUT_ID",
    "OUTPUT_ID",
    # Ingest / export
    "graph_from_dict",
    "graph_to_dict",
    "dumps",
    "loads",
    # Rules and matching
    "Rule",
    "RuleSet",
    "compile_rules",
    "Match",
    "Matcher",
    "find_matches",
    "neighbourhood",
    # Rewriting
    "Rewriter",
    "RewritePlan",
    "RewriteRecord",
    "plan_rewrite",
    "commit_rewrite",
    "apply_rewrite",
    # Search
    "CostFunction",
    "GateCount",
    "TwoQubitCount",
    "WeightedCost",
    "Depth",
    "CallableCost",
    "get_cost_function",
    "SearchConfig",
    "OptimizeResult",
    "OptimizeStatus",
    "optimize",
    "OptimizeReport",
    # Rule library
    "standard_rules",
    "rules_from_equivalence_classes",
    # Errors
    "RewriteEngineError",
    "StructuralError",
    "TypeMismatch",
    "PortOccupied",
    "NodeHasDependents",
    "CycleDetected",
    "DanglingWire",
    "RuleError",
    "MalformedPattern",
    "BoundaryMismatch",
    "StaleMatch",
    "RewriteUnsound",
    "IngestMalformed",
]

"""
Exception taxonomy for the rewrite engine.

Structural errors are raised by Graph mutation APIs before anything changes, so
the caller can always recover. Rule errors come out of compile_rules() and mean
the rule set is unusable. RewriteUnsound is fatal for the optimisation run.
"""


class RewriteEngineError(Exception):
    """Base class for all engine errors."""


# Structural ------------------------------------------------------------------

class StructuralError(RewriteEngineError):
    """An edit would break a graph invariant. The edit was not applied."""


class TypeMismatch(StructuralError):
    """Wire endpoints carry different value types."""


class PortOccupied(StructuralError):
    """Port already holds the wire it is allowed to hold."""


class NodeHasDependents(StructuralError):
    """Node still has incident wires and cascade was not requested."""


class CycleDetected(StructuralError):
    """Wires form a cycle within one hierarchy level."""


class DanglingWire(StructuralError):
    """A port that must be wired is not (or a linear output is wired twice)."""


# Rule authoring --------------------------------------------------------------

class RuleError(RewriteEngineError):
    """Rule set is malformed; no automaton is produced."""


class MalformedPattern(RuleError):
    """Pattern is empty, disconnected, hierarchical or otherwise unmatchable."""


class BoundaryMismatch(RuleError):
    """Pattern and replacement boundaries differ in arity or type."""


# Rewriting -------------------------------------------------------------------

class StaleMatch(RewriteEngineError):
    """Match refers to nodes or wires changed by an earlier rewrite."""


class RewriteUnsound(RewriteEngineError):
    """Splicing a replacement produced an invalid graph."""


# Ingest ----------------------------------------------------------------------

class IngestMalformed(RewriteEngineError):
    """External circuit description does not describe a well-formed graph."""

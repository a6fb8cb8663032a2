"""
Core IR types shared by every stage of the rewrite engine.

Contains:
    - WireType: Enum of value types carried by wires (linear or copyable)
    - Op: Enum of operation kinds, each with a fixed port signature
    - Operation: Dataclass (op, qubits, params) for the qubit-indexed builder
    - Circuit: Lazy builder, just appends Operations
"""
from __future__ import annotations

from enum import Enum, auto
from dataclasses import dataclass


class WireType(Enum):
    """Value types carried by wires."""
    QUBIT = auto()
    BIT = auto()    # Linear classical bit, threaded through like a qubit
    BOOL = auto()   # Classical control value, may fan out

    @property
    def copyable(self) -> bool: return self is WireType.BOOL


Q, B, C = WireType.QUBIT, WireType.BIT, WireType.BOOL


class Op(Enum):
    """Operation kinds. Port count and types follow from the kind."""
    # Pauli gates
    X = auto()
    Y = auto()
    Z = auto()

    # Single-qubit
    H = auto()
    S = auto()
    T = auto()
    SDG = auto()  # S-dagger (S†)
    TDG = auto()  # T-dagger (T†)

    # Rotations (parametric)
    RX = auto()
    RY = auto()
    RZ = auto()

    # Vendor-native single-qubit
    SX = auto()   # √X = RX(π/2) up to global phase

    # Two-qubit
    CX = auto()
    CZ = auto()
    CP = auto()  # Controlled phase
    SWAP = auto()
    ECR = auto()   # Echoed cross-resonance
    RZZ = auto()   # ZZ interaction

    # Three-qubit
    CCX = auto()   # Toffoli
    CCZ = auto()   # Controlled-controlled-Z

    # Measurement and reset
    MEASURE = auto()
    RESET = auto()  # Reset qubit to |0>

    # Classical
    READ_BIT = auto()  # BIT -> (BIT, BOOL)

    # Structural
    INPUT = auto()
    OUTPUT = auto()
    REGION = auto()       # Nested dataflow region, signature of its body
    CONDITIONAL = auto()  # Body runs when the leading BOOL is set

    @property
    def n_qubits(self) -> int:
        if self in (Op.CX, Op.CZ, Op.CP, Op.SWAP, Op.ECR, Op.RZZ): return 2
        if self in (Op.CCX, Op.CCZ): return 3
        if self in _NON_GATES: return 0
        return 1

    @property
    def n_params(self) -> int: return 1 if self in (Op.RX, Op.RY, Op.RZ, Op.CP, Op.RZZ) else 0

    @property
    def is_gate(self) -> bool: return self not in _NON_GATES

    @property
    def is_unitary(self) -> bool: return self.is_gate and self not in (Op.MEASURE, Op.RESET)

    @property
    def is_container(self) -> bool: return self in (Op.REGION, Op.CONDITIONAL)

    @property
    def is_boundary(self) -> bool: return self in (Op.INPUT, Op.OUTPUT)

    @property
    def signature(self) -> tuple[tuple[WireType, ...], tuple[WireType, ...]]:
        """(inputs, outputs) for fixed-arity kinds. Containers and boundaries have none."""
        if self.is_container or self.is_boundary:
            raise ValueError(f"{self.name} has no fixed signature")
        if self == Op.MEASURE: return (Q, B), (Q, B)
        if self == Op.READ_BIT: return (B,), (B, C)
        n = self.n_qubits
        return (Q,) * n, (Q,) * n


_NON_GATES = frozenset({Op.READ_BIT, Op.INPUT, Op.OUTPUT, Op.REGION, Op.CONDITIONAL})


@dataclass(frozen=True)
class Operation:
    op: Op
    qubits: tuple[int, ...]
    params: tuple[float, ...] = ()
    classical_bit: int | None = None  # For MEASURE: which classical bit to store result
    condition: int | None = None  # Classical bit that must be set for the op to run


_OP_ADJOINT = {Op.S: Op.SDG, Op.SDG: Op.S, Op.T: Op.TDG, Op.TDG: Op.T}
_PARAM_OPS = frozenset({Op.RX, Op.RY, Op.RZ, Op.CP, Op.RZZ})


class _ConditionalContext:
    """Context manager for c_if conditional blocks."""
    def __init__(self, circuit: "Circuit", classical_bit: int):
        self._circuit = circuit
        self._classical_bit = classical_bit

    def __enter__(self):
        self._circuit._current_condition = self._classical_bit
        return self

    def __exit__(self, *args):
        self._circuit._current_condition = None


# Circuit - lazy list of operations
class Circuit:
    """Lazy circuit builder. Adds operations to a list; Graph.from_circuit wires them up."""

    def __init__(self, n_qubits: int, n_bits: int = 0):
        self.n_qubits = n_qubits
        self.n_bits = n_bits
        self.ops: list[Operation] = []
        self._current_condition: int | None = None

    def _add(self, op: Op, qubits: tuple, params: tuple = (),
             classical_bit: int | None = None) -> "Circuit":
        for q in qubits:
            if not 0 <= q < self.n_qubits:
                raise ValueError(f"Qubit {q} out of range for {self.n_qubits}-qubit circuit")
        if len(set(qubits)) != len(qubits):
            raise ValueError(f"{op.name} applied to repeated qubits {qubits}")
        self.ops.append(Operation(op, qubits, tuple(float(p) for p in params), classical_bit,
                                  self._current_condition))
        return self

    def x(self, q: int) -> "Circuit": return self._add(Op.X, (q,))
    def y(self, q: int) -> "Circuit": return self._add(Op.Y, (q,))
    def z(self, q: int) -> "Circuit": return self._add(Op.Z, (q,))
    def h(self, q: int) -> "Circuit": return self._add(Op.H, (q,))
    def s(self, q: int) -> "Circuit": return self._add(Op.S, (q,))
    def t(self, q: int) -> "Circuit": return self._add(Op.T, (q,))
    def sdg(self, q: int) -> "Circuit": return self._add(Op.SDG, (q,))
    def tdg(self, q: int) -> "Circuit": return self._add(Op.TDG, (q,))
    def sx(self, q: int) -> "Circuit": return self._add(Op.SX, (q,))
    def rx(self, q: int, theta: float) -> "Circuit": return self._add(Op.RX, (q,), (theta,))
    def ry(self, q: int, theta: float) -> "Circuit": return self._add(Op.RY, (q,), (theta,))
    def rz(self, q: int, theta: float) -> "Circuit": return self._add(Op.RZ, (q,), (theta,))
    def cx(self, c: int, t: int) -> "Circuit": return self._add(Op.CX, (c, t))
    def cz(self, a: int, b: int) -> "Circuit": return self._add(Op.CZ, (a, b))
    def cp(self, c: int, t: int, theta: float) -> "Circuit": return self._add(Op.CP, (c, t), (theta,))
    def swap(self, a: int, b: int) -> "Circuit": return self._add(Op.SWAP, (a, b))
    def ecr(self, q0: int, q1: int) -> "Circuit": return self._add(Op.ECR, (q0, q1))
    def rzz(self, q0: int, q1: int, theta: float) -> "Circuit": return self._add(Op.RZZ, (q0, q1), (theta,))
    def ccx(self, c1: int, c2: int, t: int) -> "Circuit": return self._add(Op.CCX, (c1, c2, t))
    def ccz(self, a: int, b: int, c: int) -> "Circuit": return self._add(Op.CCZ, (a, b, c))

    def measure(self, q: int, c: int | None = None) -> "Circuit":
        """Measure qubit q, store result in classical bit c (defaults to q)."""
        c = c if c is not None else q
        if not 0 <= c < self.n_bits:
            raise ValueError(f"Classical bit {c} out of range for {self.n_bits} bits")
        return self._add(Op.MEASURE, (q,), (), classical_bit=c)

    def reset(self, q: int) -> "Circuit":
        """Reset qubit to |0>."""
        return self._add(Op.RESET, (q,))

    def c_if(self, classical_bit: int) -> _ConditionalContext:
        """Context manager for operations conditioned on a classical bit."""
        if not 0 <= classical_bit < self.n_bits:
            raise ValueError(f"Classical bit {classical_bit} out of range for {self.n_bits} bits")
        return _ConditionalContext(self, classical_bit)

    def inverse(self) -> Circuit:
        """Return the adjoint (inverse) circuit."""
        for op in self.ops:
            if op.op in (Op.MEASURE, Op.RESET, Op.SX):
                raise ValueError(f"inverse does not support {op.op.name}")
            if op.condition is not None:
                raise ValueError("inverse does not support conditional operations")
        c = Circuit(self.n_qubits, self.n_bits)
        for op in reversed(self.ops):
            kind = _OP_ADJOINT.get(op.op, op.op)
            params = tuple(-p for p in op.params) if op.op in _PARAM_OPS else op.params
            c.ops.append(Operation(kind, op.qubits, params))
        return c

    def __len__(self) -> int: return len(self.ops)

    def __repr__(self) -> str:
        return f"Circuit(n_qubits={self.n_qubits}, n_bits={self.n_bits}, ops={len(self.ops)})"

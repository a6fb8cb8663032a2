"""
Benchmark: rewrite search modes on generated circuits.

Compares gate counts and wall time for greedy (incremental and full re-matching,
1 and 4 threads) and bounded best-first search.

Run: python benchmarks/optimize.py
"""
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import random
import time
from math import pi

from tinyrewrite import Circuit, Graph, compile_rules, optimize, standard_rules

RULES = compile_rules(standard_rules())


def random_clifford_t(n: int, depth: int, seed: int = 42) -> Circuit:
    """Random Clifford+T layers; dense in cancellable pairs."""
    rng = random.Random(seed)
    c = Circuit(n)
    for _ in range(depth):
        for q in range(n):
            getattr(c, rng.choice(["h", "s", "sdg", "t", "tdg", "x", "z"]))(q)
        for q in range(0, n - 1, 2):
            if rng.random() < 0.5:
                c.cx(q, q + 1)
    return c


def mirrored(n: int, depth: int, seed: int = 7) -> Circuit:
    """Random circuit followed by its inverse: optimum is empty."""
    c = random_clifford_t(n, depth, seed)
    return _concat(c, c.inverse())


def _concat(a: Circuit, b: Circuit) -> Circuit:
    c = Circuit(a.n_qubits)
    c.ops.extend(a.ops + b.ops)
    return c


def toffoli_ladder(n: int) -> Circuit:
    c = Circuit(n)
    for q in range(n - 2):
        c.h(q + 2).ccx(q, q + 1, q + 2).h(q + 2).h(q + 2).ccx(q, q + 1, q + 2)
    return c


def qft_like(n: int) -> Circuit:
    c = Circuit(n)
    for i in range(n):
        c.h(i)
        for j in range(i + 1, n):
            c.cp(j, i, pi / 2 ** (j - i))
        c.h(i).h(i)
    return c


def run(circuit: Circuit, **kwargs):
    g = Graph.from_circuit(circuit)
    t0 = time.perf_counter()
    res = optimize(g, RULES, **kwargs)
    return res, time.perf_counter() - t0


def run_benchmark():
    tests = [
        ("clifford_t_6", random_clifford_t(6, 20)),
        ("clifford_t_12", random_clifford_t(12, 30)),
        ("mirrored_6", mirrored(6, 15)),
        ("toffoli_8", toffoli_ladder(8)),
        ("qft_like_8", qft_like(8)),
    ]
    configs = [
        ("greedy", {}),
        ("greedy/full", {"incremental": False}),
        ("greedy/4thr", {"n_threads": 4}),
        ("bounded", {"mode": "bounded", "max_iterations": 200}),
    ]

    print("=" * 80)
    print("BENCHMARK: gate count after optimisation (time in ms)")
    print("=" * 80)
    header = f"{'Circuit':<16} {'Original':>8}" + "".join(f" {name:>13}" for name, _ in configs)
    print(header)
    print("-" * 80)
    for name, circuit in tests:
        row = f"{name:<16} {len(circuit.ops):>8}"
        for _, kw in configs:
            res, dt = run(circuit, **kw)
            row += f" {res.graph.n_gates():>5} ({dt * 1000:>5.0f})"
        print(row)
    print("-" * 80)


if __name__ == "__main__":
    run_benchmark()

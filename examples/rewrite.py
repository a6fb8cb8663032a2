"""
Basic TinyRewrite examples.

Run: python examples/rewrite.py
"""
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from tinyrewrite import Circuit, Graph, Rule, compile_rules, find_matches, apply_rewrite, optimize, standard_rules
from tinyrewrite.library import swap_elision_rule, rules_from_equivalence_classes
from tinyrewrite.serial import dumps

# =============================================================================
# Example 1: One rule, one match
# =============================================================================
print("=== H·H -> identity ===")
rules = compile_rules([Rule.from_circuits(Circuit(1).h(0).h(0), Circuit(1))])
g = Graph.from_circuit(Circuit(2).h(0).h(0).cx(0, 1))

for m in find_matches(rules, g):
    print(f"  match of {rules[m.rule].name} at nodes {m.nodes}")
    print(f"  {apply_rewrite(rules, g, m)}")
print(f"Result: {[op.op.name for op in g.to_circuit().ops]}")

# =============================================================================
# Example 2: Standard rules to a fixpoint
# =============================================================================
print("\n=== Standard rules (greedy) ===")
c = Circuit(2).x(1).h(0).h(0).h(0).x(1).s(0).sdg(0).cx(0, 1).cx(0, 1).cx(0, 1).t(1).tdg(1)
result = optimize(Graph.from_circuit(c), standard_rules(), verbosity=2, verify=True)
print(f"Result: {[op.op.name for op in result.graph.to_circuit().ops]}")

# =============================================================================
# Example 3: Bounded best-first search
# =============================================================================
print("\n=== Bounded search ===")
c = Circuit(2).h(1).cx(0, 1).h(1).cz(0, 1).s(0).s(0).z(0)
result = optimize(Graph.from_circuit(c), standard_rules(), mode="bounded", max_iterations=100)
print(f"Status: {result.status.value}, cost {result.initial_cost:g} -> {result.final_cost:g}")
for rec in result.log:
    print(f"  {rec}")

# =============================================================================
# Example 4: SWAP elision moves permutations onto the wires
# =============================================================================
print("\n=== SWAP elision ===")
c = Circuit(3).swap(0, 1).h(0).swap(1, 2).cx(0, 2)
result = optimize(Graph.from_circuit(c), [swap_elision_rule()], verify=True)
print(f"Verified: {result.verified}")
print(dumps(result.graph))

# =============================================================================
# Example 5: Rules from an equivalence class
# =============================================================================
print("\n=== Equivalence classes ===")
cls = [Circuit(2).h(1).cx(0, 1).h(1), Circuit(2).cz(0, 1), Circuit(2).h(0).cx(1, 0).h(0)]
for rule in rules_from_equivalence_classes([cls]):
    print(f"  {rule.name}: {len(rule.pattern)} ops -> {len(rule.replacement)} ops")

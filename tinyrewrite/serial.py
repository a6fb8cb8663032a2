"""Plain-dict circuit descriptions: graph_from_dict(), graph_to_dict().

Layout (JSON compatible):

    {"inputs": ["QUBIT", ...], "outputs": ["QUBIT", ...],
     "nodes": [{"id": 2, "op": "H", "params": [], "body": {...}}, ...],
     "wires": [["input", 0, 2, 0], [2, 0, "output", 0], ...]}

Node ids in an ingested description are arbitrary labels; the graph allocates
its own. "input"/"output" name the boundary.
"""
from __future__ import annotations

import json

from .errors import IngestMalformed, StructuralError
from .graph import INPUT_ID, OUTPUT_ID, Graph, in_port, out_port
from .ir import Op, WireType

_BOUNDARY = {"input": INPUT_ID, "output": OUTPUT_ID}


def _wire_types(names, where: str) -> list[WireType]:
    try:
        return [WireType[n] for n in names]
    except (KeyError, TypeError) as e:
        raise IngestMalformed(f"{where}: unknown wire type {e}") from e


def _build(desc: dict, where: str) -> Graph:
    if not isinstance(desc, dict):
        raise IngestMalformed(f"{where}: expected a mapping, got {type(desc).__name__}")
    missing = {"inputs", "outputs", "nodes", "wires"} - desc.keys()
    if missing:
        raise IngestMalformed(f"{where}: missing keys {sorted(missing)}")
    g = Graph(_wire_types(desc["inputs"], where), _wire_types(desc["outputs"], where))
    for key in ("nodes", "wires"):
        if not isinstance(desc[key], list):
            raise IngestMalformed(f"{where}: {key} must be a list, got {type(desc[key]).__name__}")
    ids: dict = dict(_BOUNDARY)
    for nd in desc["nodes"]:
        if not isinstance(nd, dict):
            raise IngestMalformed(f"{where}: node entry {nd!r} is not a mapping")
        label = nd.get("id")
        if not isinstance(label, (str, int)) or label in ids:
            raise IngestMalformed(f"{where}: missing, duplicate or non-scalar node id {label!r}")
        try:
            op = Op[nd["op"]]
        except (KeyError, TypeError) as e:
            raise IngestMalformed(f"{where}: node {label!r} has unknown op {nd.get('op')!r}") from e
        body = _build(nd["body"], f"{where}/{label}") if nd.get("body") is not None else None
        try:
            ids[label] = g.add_node(op, tuple(nd.get("params", ())), body)
        except (ValueError, TypeError) as e:
            raise IngestMalformed(f"{where}: node {label!r}: {e}") from e
    for wd in desc["wires"]:
        try:
            s, si, d, di = wd
            g.connect(out_port(ids[s], si), in_port(ids[d], di))
        except (ValueError, KeyError, TypeError, StructuralError) as e:
            raise IngestMalformed(f"{where}: bad wire {wd!r}: {e}") from e
    return g


def graph_from_dict(desc: dict) -> Graph:
    """Build and validate a Graph from a description. Raises IngestMalformed."""
    g = _build(desc, "graph")
    try:
        g.validate()
    except (StructuralError, ValueError) as e:
        raise IngestMalformed(str(e)) from e
    return g


def _label(nid: int):
    return "input" if nid == INPUT_ID else "output" if nid == OUTPUT_ID else nid


def graph_to_dict(graph: Graph) -> dict:
    """Deterministic description of a graph (node ids preserved)."""
    nodes = []
    for nid in graph.op_nodes():
        node = graph.node(nid)
        nd = {"id": nid, "op": node.op.name, "params": list(node.params)}
        if node.body is not None:
            nd["body"] = graph_to_dict(node.body)
        nodes.append(nd)
    return {
        "inputs": [t.name for t in graph.inputs],
        "outputs": [t.name for t in graph.outputs],
        "nodes": nodes,
        "wires": [[_label(w.src.node), w.src.index, _label(w.dst.node), w.dst.index] for w in graph.wires()],
    }


def dumps(graph: Graph) -> str:
    return json.dumps(graph_to_dict(graph), sort_keys=True)


def loads(text: str) -> Graph:
    try:
        desc = json.loads(text)
    except json.JSONDecodeError as e:
        raise IngestMalformed(f"invalid JSON: {e}") from e
    return graph_from_dict(desc)

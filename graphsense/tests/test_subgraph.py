import asyncio

from graphsense.graph.graph_writer import GraphWriter
from graphsense.query.subgraph import extract_subgraph, function_call_context
from graphsense.types import GraphNode, GraphPath, GraphRelationship


FILE_A = GraphNode("f1", ["File"], {"path": "/a.ts"})
FILE_B = GraphNode("f2", ["File"], {"path": "/b.ts"})
MAIN = GraphNode("n1", ["Function"], {"name": "main", "path": "/a.ts"})
HELPER = GraphNode("n2", ["Function"], {"name": "helper", "path": "/b.ts"})
IMPORT = GraphRelationship("r1", "IMPORTS_FROM", "f1", "f2", {"clause": "helper"})
CALL = GraphRelationship("r2", "CALLS", "n1", "n2")


def test_duplicates_across_records_are_collapsed():
    records = [
        {"caller": MAIN, "rel": CALL, "callee": HELPER},
        {"caller": MAIN, "rel": CALL, "callee": HELPER},
    ]

    subgraph = extract_subgraph(records)

    assert [n.element_id for n in subgraph.nodes] == ["n1", "n2"]
    assert [r.element_id for r in subgraph.relationships] == ["r2"]


def test_nested_values_and_paths():
    records = [
        {"path": GraphPath(nodes=[FILE_A, FILE_B], relationships=[IMPORT])},
        {"functions": [MAIN, [HELPER]], "count": 2, "name": "main"},
        {"pair": (MAIN, CALL)},
    ]

    subgraph = extract_subgraph(records)

    assert [n.element_id for n in subgraph.nodes] == ["f1", "f2", "n1", "n2"]
    assert [r.element_id for r in subgraph.relationships] == ["r1", "r2"]


def test_label_and_type_filters():
    records = [{"a": FILE_A, "b": FILE_B, "m": MAIN, "i": IMPORT, "c": CALL}]

    subgraph = extract_subgraph(records, allowed_labels=["File"], allowed_types=["CALLS"])

    assert [n.element_id for n in subgraph.nodes] == ["f1", "f2"]
    assert [r.element_id for r in subgraph.relationships] == ["r2"]


def test_scalar_only_records_give_empty_subgraph():
    subgraph = extract_subgraph([{"count": 3}, {"names": ["a", "b"]}])

    assert subgraph.to_dict() == {"nodes": [], "relationships": []}


def test_function_call_context(json_store):
    writer = GraphWriter(json_store)

    async def scenario():
        await writer.merge_call("main", "/a.ts", "helper", "/b.ts")
        await writer.merge_call("helper", "/b.ts", "format", "/c.ts")
        await writer.merge_call("other", "/d.ts", "helper", "/b.ts")
        helper_id = await writer.merge_function("helper", "/b.ts")
        return await function_call_context(json_store, helper_id)

    context = asyncio.run(scenario())

    assert sorted(n.properties["name"] for n in context["callers"]) == ["main", "other"]
    assert [n.properties["name"] for n in context["callees"]] == ["format"]


def test_function_call_context_unknown_id(json_store):
    context = asyncio.run(function_call_context(json_store, "missing"))

    assert context == {"callers": [], "callees": []}

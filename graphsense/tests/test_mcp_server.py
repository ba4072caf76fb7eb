import asyncio
import json

from fastmcp import Client, FastMCP

from graphsense.graph.base import CALLS, FUNCTION_LABEL
from graphsense.graph.graph_writer import function_key
from graphsense.mcp.server import GraphSenseMCP
from graphsense.types import FunctionRecord


def _text(result) -> str:
    # Older fastmcp clients return the content list directly.
    content = getattr(result, "content", result)
    return content[0].text


def _call(server: GraphSenseMCP, tool: str, arguments: dict) -> str:
    async def call():
        async with Client(server.get_server()) as client:
            return _text(await client.call_tool(tool, arguments))

    return asyncio.run(call())


def test_server_wraps_services(services):
    server = GraphSenseMCP(services)

    assert isinstance(server.get_server(), FastMCP)
    assert server.services is services


def test_callers_and_callees(services, json_store):
    asyncio.run(json_store.merge_relationship(
        CALLS,
        FUNCTION_LABEL, function_key("main", "/src/a.ts"),
        FUNCTION_LABEL, function_key("helper", "/src/b.ts"),
    ))
    main = asyncio.run(json_store.get_node(FUNCTION_LABEL, function_key("main", "/src/a.ts")))
    helper = asyncio.run(json_store.get_node(FUNCTION_LABEL, function_key("helper", "/src/b.ts")))
    server = GraphSenseMCP(services)

    callers = json.loads(_call(server, "function_callers", {"function_id": helper.element_id}))
    callees = json.loads(_call(server, "function_callees", {"function_id": main.element_id}))

    assert callers == [{"id": main.element_id, "name": "main", "path": "/src/a.ts"}]
    assert callees == [{"id": helper.element_id, "name": "helper", "path": "/src/b.ts"}]


def test_function_details(services, fake_record_store):
    fake_record_store.records["f1"] = FunctionRecord(
        id="f1", name="helper", path="/src/b.ts", summary="Returns one.",
        code="function helper() { return 1; }", start_line=1, end_line=3,
    )
    server = GraphSenseMCP(services)

    details = json.loads(_call(server, "function_details", {"function_id": "f1"}))
    missing = _call(server, "function_details", {"function_id": "nope"})

    assert details["summary"] == "Returns one."
    assert details["start_line"] == 1
    assert missing == "Function with ID nope not found"


def test_index_codebase(services, sample_codebase):
    server = GraphSenseMCP(services)

    report = _call(server, "index_codebase", {"root_path": str(sample_codebase)})

    assert report.splitlines()[:2] == ["Indexed 3 files", "Functions: 5"]
    assert "Graph relationships: 7" in report

import asyncio
from pathlib import Path

from graphsense.enrichment.queue import EnrichmentQueue
from graphsense.exceptions import GraphQueryError
from graphsense.graph.base import CALLS, IMPORTS_FROM
from graphsense.graph.json_graph_client import JsonGraphClient
from graphsense.indexer.pipeline import IndexingPipeline


def _edges(store: JsonGraphClient, rel_type: str):
    """(source properties, target properties, edge properties) for every edge of a type."""
    edges = []
    for rel in store.all_relationships(rel_type):
        source = store.data["nodes"][rel.start_node_id]["properties"]
        target = store.data["nodes"][rel.end_node_id]["properties"]
        edges.append((source, target, rel.properties))
    return edges


def test_three_file_scenario(sample_codebase, json_store):
    """A imports two helpers from B and one utility from C and calls all three."""
    pipeline = IndexingPipeline(json_store)

    registrations = asyncio.run(pipeline.register_directory(str(sample_codebase)))
    stats = asyncio.run(json_store.get_database_stats())

    assert len(registrations) == 3
    assert stats["nodes"] == {"File": 3, "Function": 5}
    assert stats["relationships"] == {"IMPORTS_FROM": 3, "CALLS": 4}

    file_b = str((sample_codebase / "fileB.ts").resolve())
    file_c = str((sample_codebase / "fileC.ts").resolve())
    calls = {(s["name"], t["name"], t["path"]) for s, t, _ in _edges(json_store, CALLS)}
    assert calls == {
        ("mainFunction", "helperFunction", file_b),
        ("mainFunction", "anotherHelper", file_b),
        ("mainFunction", "utilityFunction", file_c),
        ("secondFunction", "helperFunction", file_b),
    }


def test_registration_is_idempotent(sample_codebase, json_store):
    pipeline = IndexingPipeline(json_store)

    asyncio.run(pipeline.register_directory(str(sample_codebase)))
    first = asyncio.run(json_store.get_database_stats())
    asyncio.run(pipeline.register_directory(str(sample_codebase)))
    asyncio.run(pipeline.register_file(str(sample_codebase / "fileA.ts"), reparse=True))
    second = asyncio.run(json_store.get_database_stats())

    assert first == second


def test_registration_order_does_not_matter(sample_codebase):
    forward = JsonGraphClient()
    backward = JsonGraphClient()
    names = ["fileA.ts", "fileB.ts", "fileC.ts"]

    async def register(store, order):
        pipeline = IndexingPipeline(store)
        for name in order:
            await pipeline.register_file(str(sample_codebase / name))

    asyncio.run(register(forward, names))
    asyncio.run(register(backward, list(reversed(names))))

    assert set(forward.data["nodes"]) == set(backward.data["nodes"])
    assert set(forward.data["relationships"]) == set(backward.data["relationships"])


def test_edit_removes_stale_edges(sample_codebase, json_store):
    pipeline = IndexingPipeline(json_store)
    asyncio.run(pipeline.register_directory(str(sample_codebase)))

    (sample_codebase / "fileA.ts").write_text(
        "import { helperFunction } from './fileB';\n"
        "\n"
        "export function mainFunction() {\n"
        "  helperFunction();\n"
        "}\n"
    )
    asyncio.run(pipeline.register_file(str(sample_codebase / "fileA.ts"), reparse=True))

    imports = {(t["path"], p["clause"]) for _, t, p in _edges(json_store, IMPORTS_FROM)}
    calls = {(s["name"], t["name"]) for s, t, _ in _edges(json_store, CALLS)}
    file_b = str((sample_codebase / "fileB.ts").resolve())

    assert imports == {(file_b, "helperFunction")}
    assert ("mainFunction", "helperFunction") in calls
    assert ("mainFunction", "anotherHelper") not in calls
    assert ("mainFunction", "utilityFunction") not in calls


def test_unparsable_file_is_skipped(tmp_path, json_store):
    (tmp_path / "good.ts").write_text("export function ok() { return 1; }\n")
    (tmp_path / "bad.ts").write_text("export function broken( {\n")
    pipeline = IndexingPipeline(json_store)

    registrations = asyncio.run(pipeline.register_directory(str(tmp_path)))

    assert [Path(r.path).name for r in registrations] == ["good.ts"]
    assert asyncio.run(json_store.get_database_stats())["nodes"] == {"File": 1, "Function": 1}


def test_new_functions_are_enqueued_once(sample_codebase, json_store, fake_llm,
                                         fake_embedding, fake_record_store):
    queue = EnrichmentQueue(fake_llm, fake_embedding, fake_record_store, maxsize=100)
    pipeline = IndexingPipeline(json_store, enrichment_queue=queue, record_store=fake_record_store)

    registrations = asyncio.run(pipeline.register_directory(str(sample_codebase)))
    assert sum(r.enqueued for r in registrations) == 5
    assert len(queue) == 5

    assert asyncio.run(queue.drain()) == 5
    assert len(fake_record_store.records) == 5

    # Already enriched functions are not queued again on a plain registration.
    registrations = asyncio.run(pipeline.register_directory(str(sample_codebase)))
    assert sum(r.enqueued for r in registrations) == 0


def test_reparse_requeues_functions(sample_codebase, json_store, fake_llm,
                                   fake_embedding, fake_record_store):
    queue = EnrichmentQueue(fake_llm, fake_embedding, fake_record_store, maxsize=100)
    pipeline = IndexingPipeline(json_store, enrichment_queue=queue, record_store=fake_record_store)
    asyncio.run(pipeline.register_directory(str(sample_codebase)))
    asyncio.run(queue.drain())

    registration = asyncio.run(
        pipeline.register_file(str(sample_codebase / "fileB.ts"), reparse=True)
    )

    assert registration.enqueued == 2
    assert {item.name for item in queue.pending.values()} == {"helperFunction", "anotherHelper"}


def test_enqueued_record_id_matches_function_node(sample_codebase, json_store, fake_llm,
                                                  fake_embedding, fake_record_store):
    queue = EnrichmentQueue(fake_llm, fake_embedding, fake_record_store, maxsize=100)
    pipeline = IndexingPipeline(json_store, enrichment_queue=queue, record_store=fake_record_store)
    asyncio.run(pipeline.register_file(str(sample_codebase / "fileC.ts")))
    asyncio.run(queue.drain())

    node = json_store.function_nodes()[0]
    record = fake_record_store.records[node.element_id]
    assert record.name == "utilityFunction"
    assert record.start_line == 2
    assert record.summary.startswith("Summary of function utilityFunction")


class BrokenFileStore(JsonGraphClient):
    """Raises an unexpected error when one particular File node is merged."""

    def __init__(self, broken_name: str):
        super().__init__()
        self.broken_name = broken_name

    async def merge_node(self, label, key):
        if key.get("path", "").endswith(self.broken_name):
            raise RuntimeError("connection reset by peer")
        return await super().merge_node(label, key)


class UnlistableStore(JsonGraphClient):
    """Every relationship lookup fails."""

    async def find_relationships(self, rel_type, from_label, from_key, attrs=None):
        raise GraphQueryError("lookup failed")


def test_unexpected_error_in_one_file_spares_the_rest(sample_codebase):
    store = BrokenFileStore("fileC.ts")
    pipeline = IndexingPipeline(store)

    registrations = asyncio.run(pipeline.register_directory(str(sample_codebase)))

    assert sorted(Path(r.path).name for r in registrations) == ["fileA.ts", "fileB.ts"]


def test_failed_lookups_still_register_file(sample_codebase):
    store = UnlistableStore()
    pipeline = IndexingPipeline(store)

    registration = asyncio.run(pipeline.register_file(str(sample_codebase / "fileA.ts")))

    assert registration is not None
    assert registration.imports == 3
    assert registration.calls == 0
    stats = asyncio.run(store.get_database_stats())
    assert stats["nodes"]["Function"] == 2
    assert stats["relationships"] == {"IMPORTS_FROM": 3}


def test_directory_registration_saves_once(sample_codebase, tmp_path):
    storage = tmp_path / "graph.json"
    store = JsonGraphClient(str(storage))

    asyncio.run(IndexingPipeline(store).register_directory(str(sample_codebase)))

    assert storage.exists()

#!/usr/bin/env python3
"""
GraphSense - code graph indexer and query server.

Builds a File/Function graph with import and call edges from a TypeScript or
JavaScript codebase, enriches functions with summaries and embeddings, and
answers natural-language questions through an MCP server or an HTTP API.
"""

import asyncio
import argparse
import sys

from .config import settings
from .utils.logger import app_logger, set_log_level


async def run_index(root_path: str, enrich: bool):
    """Register a directory once and, optionally, enrich every new function."""
    from .graph.base import GraphStore
    from .indexer.pipeline import IndexingPipeline
    from .services import build_graph_store, build_services

    if enrich:
        services = build_services()
        await services.setup()
        try:
            registrations = await services.pipeline.register_directory(root_path)
            app_logger.info(f"Enriching {len(services.enrichment_queue)} functions")
            await services.enrichment_queue.drain()
            stats = await services.get_stats()
        finally:
            await services.close()
    else:
        graph_store: GraphStore = build_graph_store()
        await graph_store.setup()
        try:
            registrations = await IndexingPipeline(graph_store).register_directory(root_path)
            stats = {"graph": await graph_store.get_database_stats()}
        finally:
            await graph_store.close()

    app_logger.info(f"Indexed {len(registrations)} files: {stats}")


async def run_watch(root_path: str):
    """Initial registration, then keep the graph in sync with the tree."""
    from .services import build_services

    services = build_services()
    await services.setup()
    watcher = services.create_watcher(root_path)
    try:
        await services.pipeline.register_directory(root_path)
        services.enrichment_queue.start()
        watcher.start()
        await asyncio.Event().wait()
    finally:
        await watcher.stop()
        await services.close()


async def run_mcp(transport: str, host: str, port: int, watch_root: str = None):
    from .mcp.server import GraphSenseMCP
    from .services import build_services

    services = build_services()
    await services.setup()
    watcher = services.create_watcher(watch_root) if watch_root else None
    try:
        services.enrichment_queue.start()
        if watcher:
            await services.pipeline.register_directory(watch_root)
            watcher.start()

        server = GraphSenseMCP(services).get_server()
        if transport == "stdio":
            await server.run_async(transport="stdio")
        else:
            await server.run_async(transport="http", host=host, port=port)
    finally:
        if watcher:
            await watcher.stop()
        await services.close()


def run_api(host: str, port: int):
    import uvicorn
    from .api_server import create_app

    uvicorn.run(create_app(), host=host, port=port, log_level=settings.log_level.lower())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="graphsense", description="GraphSense code graph")
    parser.add_argument("--log-level", default=settings.log_level, help="Log level")
    parser.add_argument("--graph-backend", choices=["neo4j", "json"], default=None,
                        help="Graph store to use (overrides GRAPH_BACKEND)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    index_parser = subparsers.add_parser("index", help="Index a directory once")
    index_parser.add_argument("root", help="Codebase root directory")
    index_parser.add_argument("--no-enrich", action="store_true",
                              help="Only build the graph, skip summaries and embeddings")

    watch_parser = subparsers.add_parser("watch", help="Index a directory and follow changes")
    watch_parser.add_argument("root", help="Codebase root directory")

    serve_parser = subparsers.add_parser("serve", help="Run the MCP server")
    serve_parser.add_argument("--transport", choices=["stdio", "http"], default="http")
    serve_parser.add_argument("--host", default=settings.mcp_host, help="Host for HTTP transport")
    serve_parser.add_argument("--port", type=int, default=settings.mcp_port, help="Port for HTTP transport")
    serve_parser.add_argument("--watch", dest="watch_root", default=None,
                              help="Also index and watch this directory")

    api_parser = subparsers.add_parser("api", help="Run the HTTP API")
    api_parser.add_argument("--host", default=settings.api_host)
    api_parser.add_argument("--port", type=int, default=settings.api_port)

    return parser


def main(argv=None):
    """Main entry point."""
    args = build_parser().parse_args(argv)

    if args.log_level != settings.log_level:
        set_log_level(args.log_level)
    if args.graph_backend:
        settings.graph_backend = args.graph_backend

    app_logger.info(f"Starting GraphSense {args.command} (graph backend: {settings.graph_backend})")

    try:
        if args.command == "index":
            asyncio.run(run_index(args.root, enrich=not args.no_enrich))
        elif args.command == "watch":
            asyncio.run(run_watch(args.root))
        elif args.command == "serve":
            asyncio.run(run_mcp(args.transport, args.host, args.port, args.watch_root))
        elif args.command == "api":
            run_api(args.host, args.port)
    except KeyboardInterrupt:
        app_logger.info("Shutting down...")
    except Exception as e:
        app_logger.error(f"Error running {args.command}: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

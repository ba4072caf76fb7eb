import json
from typing import Optional

from fastmcp import FastMCP

from ..exceptions import QueryGenerationError
from ..query.subgraph import function_call_context
from ..utils.logger import app_logger


class GraphSenseMCP:
    """MCP server exposing function search and call-graph navigation."""

    def __init__(self, services):
        self.logger = app_logger.bind(component="mcp_server")
        self.mcp = FastMCP("GraphSense")
        self.services = services

        self._register_tools()

    def _register_tools(self):
        """Register all MCP tools."""

        @self.mcp.tool()
        async def similar_functions(function_description: str, top_k: int = 10) -> str:
            """Search for functions in the codebase based on what they do.

            Args:
                function_description: Description of the task performed by the function
                top_k: Number of results to return

            Returns:
                JSON list of functions with id, name and path, best first
            """
            try:
                results = await self.services.function_search.search(function_description, top_k)
                return json.dumps(
                    [{"id": r.id, "name": r.name, "path": r.path} for r in results],
                    indent=2,
                )
            except Exception as e:
                self.logger.error(f"Error finding similar functions: {e}")
                return f"Error finding similar functions: {e}"

        @self.mcp.tool()
        async def function_callers(function_id: str) -> str:
            """Find functions that call a specific function.

            Args:
                function_id: The element ID of the function to find callers for
            """
            try:
                context = await function_call_context(self.services.graph_store, function_id)
                return json.dumps([
                    {"id": node.element_id, "name": node.properties.get("name"),
                     "path": node.properties.get("path")}
                    for node in context["callers"]
                ], indent=2)
            except Exception as e:
                self.logger.error(f"Error finding function callers: {e}")
                return f"Error finding function callers: {e}"

        @self.mcp.tool()
        async def function_callees(function_id: str) -> str:
            """Find functions called by a specific function.

            Args:
                function_id: The element ID of the function to find callees for
            """
            try:
                context = await function_call_context(self.services.graph_store, function_id)
                return json.dumps([
                    {"id": node.element_id, "name": node.properties.get("name"),
                     "path": node.properties.get("path")}
                    for node in context["callees"]
                ], indent=2)
            except Exception as e:
                self.logger.error(f"Error finding function callees: {e}")
                return f"Error finding function callees: {e}"

        @self.mcp.tool()
        async def function_details(function_id: str) -> str:
            """Get the code and summary of a specific function.

            Args:
                function_id: The element ID of the function
            """
            try:
                record = await self.services.record_store.get(function_id)
                if record is None:
                    return f"Function with ID {function_id} not found"
                return json.dumps(record.to_dict(), indent=2)
            except Exception as e:
                self.logger.error(f"Error getting function details: {e}")
                return f"Error getting function details: {e}"

        @self.mcp.tool()
        async def query_codebase(query: str) -> str:
            """Answer a question about the code with vector search or a graph query.

            Args:
                query: Natural-language question about functions, calls or imports

            Returns:
                JSON with the routing decision and either functions or a subgraph
            """
            try:
                response = await self.services.planner.search(query)
                return json.dumps(response.to_dict(), indent=2, default=str)
            except QueryGenerationError as e:
                self.logger.warning(str(e))
                return f"Could not produce a valid query: {e.message}"
            except Exception as e:
                self.logger.error(f"Error querying codebase: {e}")
                return f"Error querying codebase: {e}"

        @self.mcp.tool()
        async def answer_question(query: str) -> str:
            """Answer a question about the code in plain language.

            Args:
                query: Natural-language question
            """
            try:
                result = await self.services.planner.answer(query)
                return result["answer"]
            except Exception as e:
                self.logger.error(f"Error answering question: {e}")
                return f"Error answering question: {e}"

        @self.mcp.tool()
        async def index_codebase(root_path: Optional[str] = None) -> str:
            """Register every source file under a directory.

            Args:
                root_path: Path to the codebase directory (defaults to current directory)

            Returns:
                Status message with indexing statistics
            """
            try:
                root_path = root_path or "."
                registrations = await self.services.pipeline.register_directory(root_path)
                if not registrations:
                    return f"No files found to index in {root_path}"

                stats = await self.services.graph_store.get_database_stats()
                return (
                    f"Indexed {len(registrations)} files\n"
                    f"Functions: {sum(r.functions for r in registrations)}\n"
                    f"Queued for enrichment: {sum(r.enqueued for r in registrations)}\n"
                    f"Graph nodes: {sum(stats.get('nodes', {}).values())}\n"
                    f"Graph relationships: {sum(stats.get('relationships', {}).values())}"
                )
            except Exception as e:
                self.logger.error(f"Error indexing codebase: {e}")
                return f"Error indexing codebase: {e}"

        @self.mcp.tool()
        async def get_system_stats() -> str:
            """Get graph, record store and enrichment queue statistics."""
            try:
                stats = await self.services.get_stats()

                formatted_stats = "System Statistics\n"
                formatted_stats += "=" * 50 + "\n\n"

                graph_stats = stats["graph"]
                formatted_stats += "Graph:\n"
                for label, count in graph_stats.get("nodes", {}).items():
                    formatted_stats += f"   - {label}: {count}\n"
                for rel_type, count in graph_stats.get("relationships", {}).items():
                    formatted_stats += f"   - {rel_type}: {count}\n"

                record_stats = stats["records"]
                if "error" not in record_stats:
                    formatted_stats += "\nFunction records:\n"
                    formatted_stats += f"   Collection: {record_stats.get('collection_name', 'N/A')}\n"
                    formatted_stats += f"   Entities: {record_stats.get('num_entities', 0)}\n"

                queue_stats = stats["enrichment"]
                formatted_stats += "\nEnrichment queue:\n"
                formatted_stats += f"   Pending: {queue_stats['pending']}\n"
                formatted_stats += f"   Processed: {queue_stats['processed']}\n"
                formatted_stats += f"   Failed: {queue_stats['failed']}\n"

                return formatted_stats
            except Exception as e:
                self.logger.error(f"Error getting system stats: {e}")
                return f"Error getting system stats: {e}"

    def get_server(self):
        """Get the FastMCP server instance."""
        return self.mcp

from typing import Any, Dict, Optional
import json
import re

from ..exceptions import ClassificationError
from ..types import QueryDecision, QueryRoute
from ..utils.logger import app_logger


CLASSIFY_PROMPT = """You are an expert system architect with deep knowledge of graph databases (Neo4j)
and vector search over function summaries. The two stores hold:

Graph database:
- Nodes:
  - File nodes with a 'path' property (string).
  - Function nodes with 'name' (string) and 'path' (string) properties.
- Relationships:
  - (File)-[:IMPORTS_FROM {{ clause: string }}]->(File), where 'clause' is the name of the imported function.
  - (Function)-[:CALLS]->(Function)

Function summary store:
- One record per function with its name, path, code, a natural-language summary
  and an embedding of that summary for semantic search.

Given a user query about functions or code, decide whether to run a vector search
over the function summaries or to query the graph database.

Guidelines:
1. Natural-language descriptions or questions that look for functions by meaning,
   behaviour or similarity go to vector search.
2. Structural questions go to the graph: which functions call a given function,
   which files import a function, call hierarchies, dependency chains.
3. Queries mixing semantic intent with structural constraints go to vector search.
4. When the query is ambiguous or broad, prefer vector search to maximize recall.

Explain the decision in one or two plain sentences without mentioning the
databases and without repeating the query.

Answer with JSON only, in this shape:
{{"reason": string, "decision": "vector" | "graph", "summary": string}}
When the decision is "vector", "summary" is a one line description of the wanted
function to use for the vector search; otherwise leave it empty.

Query: "{query}"
"""

JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)

ROUTE_ALIASES = {
    "vector": QueryRoute.VECTOR,
    "sql": QueryRoute.VECTOR,
    "semantic": QueryRoute.VECTOR,
    "graph": QueryRoute.GRAPH,
    "neo4j": QueryRoute.GRAPH,
    "cypher": QueryRoute.GRAPH,
}


def parse_decision(text: str) -> Optional[Dict[str, Any]]:
    """Pull the JSON object out of a model answer, fenced or not."""
    match = JSON_OBJECT.search(text or "")
    if not match:
        return None
    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return payload if isinstance(payload, dict) else None


class QueryClassifier:
    """Routes a natural-language query to vector search or the graph."""

    def __init__(self, llm_service):
        self.llm_service = llm_service
        self.logger = app_logger.bind(component="query_classifier")

    async def classify(self, query: str) -> QueryDecision:
        try:
            text = await self.llm_service.generate(CLASSIFY_PROMPT.format(query=query))
        except Exception as e:
            raise ClassificationError(f"classifier unavailable: {e}", e)

        payload = parse_decision(text)
        if payload is None:
            self.logger.warning(f"Unparsable classifier answer, using vector search: {text!r}")
            return QueryDecision(QueryRoute.VECTOR, "Searching functions by meaning.", query)

        tag = str(payload.get("decision", "")).strip().lower()
        route = ROUTE_ALIASES.get(tag)
        reason = str(payload.get("reason") or "").strip()
        if route is None:
            self.logger.warning(f"Unknown classifier decision {tag!r}, using vector search")
            route = QueryRoute.VECTOR

        search_text = None
        if route is QueryRoute.VECTOR:
            search_text = str(payload.get("summary") or "").strip() or query

        self.logger.info(f"Query routed to {route.value}: {reason}")
        return QueryDecision(route=route, rationale=reason, search_text=search_text)

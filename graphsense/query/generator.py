from typing import Optional
import re

from ..utils.logger import app_logger


CYPHER_PROMPT = """You are an expert Cypher query generator for a Neo4j database with this schema:

- Nodes:
  - (File) nodes have a 'path' property (string).
  - (Function) nodes have 'name' (string) and 'path' (string) properties.
- Relationships:
  - (File)-[:IMPORTS_FROM {{ clause: string }}]->(File)
    * 'clause' is the name of the imported function.
  - (Function)-[:CALLS]->(Function)

Given a natural language query, write one read-only Cypher query that:
1. Matches the nodes relevant to the query.
2. Returns all relationships between the matched nodes.
3. Binds every matched node and relationship to a variable and returns them.

Notes:
- Match functions on 'name', and on 'path' too when the query gives one.
- Match files on 'path'.
- Filter imports by function name with the IMPORTS_FROM 'clause' property.

Examples:

1. Query: "Which functions are called by internalSyncCustomerWallet?"
Cypher:
MATCH (caller:Function {{name: "internalSyncCustomerWallet"}})-[rel:CALLS]->(callee:Function)
RETURN caller, callee, rel

2. Query: "Which files import a function named round?"
Cypher:
MATCH (importer:File)-[rel:IMPORTS_FROM {{clause: "round"}}]->(importee:File)
RETURN importer, importee, rel

3. Query: "Show all functions and files related to the function 'processOrder' including their calls and imports."
Cypher:
MATCH (f:Function {{name: "processOrder"}})
OPTIONAL MATCH (f)-[callRel:CALLS]->(calledFunc:Function)
OPTIONAL MATCH (file:File {{path: f.path}})-[importRel:IMPORTS_FROM]->(importedFile:File)
RETURN f, callRel, calledFunc, file, importRel, importedFile
{correction}
Query: "{query}"

Return only the Cypher query.
"""

CORRECTION = "\nThe previous query failed. Please avoid this error in the query: {error}\n"

CODE_FENCE = re.compile(r"```[a-zA-Z]*\s*(.*?)```", re.DOTALL)


def strip_code_fence(text: str) -> str:
    match = CODE_FENCE.search(text or "")
    if match:
        return match.group(1).strip()
    return (text or "").strip()


class CypherGenerator:
    """Writes a graph query for a natural-language question."""

    def __init__(self, llm_service):
        self.llm_service = llm_service
        self.logger = app_logger.bind(component="cypher_generator")

    def build_prompt(self, query: str, error: Optional[str] = None) -> str:
        correction = CORRECTION.format(error=error) if error else ""
        return CYPHER_PROMPT.format(query=query, correction=correction)

    async def generate(self, query: str, error: Optional[str] = None) -> str:
        text = await self.llm_service.generate(self.build_prompt(query, error))
        candidate = strip_code_fence(text)
        self.logger.debug(f"Generated query: {candidate}")
        return candidate

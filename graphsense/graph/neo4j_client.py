import re
from typing import List, Dict, Any, Optional

from neo4j import AsyncGraphDatabase
from neo4j.exceptions import ConstraintError, DriverError, Neo4jError
from neo4j.graph import Node, Relationship, Path

from .base import GraphStore, CALLS, FUNCTION_LABEL
from ..config import settings
from ..exceptions import GraphQueryError, GraphWriteError
from ..types import GraphNode, GraphRelationship, GraphPath
from ..utils.logger import app_logger


IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _identifier(value: str) -> str:
    """Labels, types and property names cannot be parameterized."""
    if not IDENTIFIER.match(value):
        raise ValueError(f"Invalid graph identifier: {value!r}")
    return value


def _property_map(param: str, properties: Optional[Dict[str, Any]]) -> str:
    if not properties:
        return ""
    fields = ", ".join(f"{_identifier(k)}: ${param}.{k}" for k in properties)
    return f" {{{fields}}}"


def convert_value(value: Any) -> Any:
    """Convert driver graph types into GraphNode/GraphRelationship/GraphPath."""
    if isinstance(value, Node):
        return GraphNode(
            element_id=value.element_id,
            labels=list(value.labels),
            properties=dict(value),
        )
    if isinstance(value, Relationship):
        return GraphRelationship(
            element_id=value.element_id,
            type=value.type,
            start_node_id=value.start_node.element_id,
            end_node_id=value.end_node.element_id,
            properties=dict(value),
        )
    if isinstance(value, Path):
        return GraphPath(
            nodes=[convert_value(n) for n in value.nodes],
            relationships=[convert_value(r) for r in value.relationships],
        )
    if isinstance(value, list):
        return [convert_value(v) for v in value]
    if isinstance(value, dict):
        return {k: convert_value(v) for k, v in value.items()}
    return value


class Neo4jClient(GraphStore):
    """Neo4j client for graph database operations."""

    def __init__(self, uri: Optional[str] = None, username: Optional[str] = None,
                 password: Optional[str] = None, database: Optional[str] = None):
        self.logger = app_logger.bind(component="neo4j_client")
        self.uri = uri or settings.neo4j_uri
        self.database = database or settings.neo4j_database
        try:
            self.driver = AsyncGraphDatabase.driver(
                self.uri,
                auth=(username or settings.neo4j_username, password or settings.neo4j_password),
            )
            self.logger.info(f"Connected to Neo4j at {self.uri}")
        except Exception as e:
            self.logger.error(f"Failed to connect to Neo4j: {e}")
            raise

    async def setup(self) -> None:
        """Ensure necessary constraints exist."""
        constraints = [
            "CREATE CONSTRAINT file_path_unique IF NOT EXISTS FOR (f:File) REQUIRE f.path IS UNIQUE",
            "CREATE CONSTRAINT function_name_path_unique IF NOT EXISTS FOR (f:Function) REQUIRE (f.name, f.path) IS UNIQUE",
        ]

        async with self.driver.session(database=self.database) as session:
            for constraint in constraints:
                try:
                    await session.run(constraint)
                    self.logger.debug(f"Created constraint: {constraint}")
                except Exception as e:
                    self.logger.warning(f"Failed to create constraint {constraint}: {e}")

    async def close(self) -> None:
        """Close connection to Neo4j."""
        await self.driver.close()
        self.logger.info("Disconnected from Neo4j")

    async def _write(self, query: str, params: Dict[str, Any]) -> Any:
        """Run a write query in a managed transaction and return the first value.

        Two concurrent MERGEs on the same key can both miss and then collide
        on the uniqueness constraint. The loser is retried once, by which
        point the MERGE matches.
        """
        async def work(tx):
            result = await tx.run(query, params)
            record = await result.single()
            return record[0] if record else None

        for attempt in (1, 2):
            try:
                async with self.driver.session(database=self.database) as session:
                    return await session.execute_write(work)
            except ConstraintError as e:
                if attempt == 2:
                    raise GraphWriteError(f"constraint violation: {e.message}", e)
                self.logger.debug(f"Constraint race, retrying merge: {e.message}")
            except Neo4jError as e:
                raise GraphWriteError(e.message or str(e), e)
            except DriverError as e:
                raise GraphWriteError(f"driver failure: {e}", e)

    async def _read(self, query: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        async def work(tx):
            result = await tx.run(query, params or {})
            keys = result.keys()
            return [
                {key: convert_value(record[key]) for key in keys}
                async for record in result
            ]

        try:
            async with self.driver.session(database=self.database) as session:
                return await session.execute_read(work)
        except Neo4jError as e:
            raise GraphQueryError(e.message or str(e), e)
        except DriverError as e:
            raise GraphQueryError(f"driver failure: {e}", e)

    async def merge_node(self, label: str, key: Dict[str, Any]) -> str:
        query = f"MERGE (n:{_identifier(label)}{_property_map('key', key)}) RETURN elementId(n)"
        return await self._write(query, {"key": key})

    async def merge_relationship(self, rel_type: str,
                                 from_label: str, from_key: Dict[str, Any],
                                 to_label: str, to_key: Dict[str, Any],
                                 attrs: Optional[Dict[str, Any]] = None) -> str:
        query = f"""
        MERGE (a:{_identifier(from_label)}{_property_map('from_key', from_key)})
        MERGE (b:{_identifier(to_label)}{_property_map('to_key', to_key)})
        MERGE (a)-[r:{_identifier(rel_type)}{_property_map('attrs', attrs)}]->(b)
        RETURN elementId(r)
        """
        return await self._write(query, {
            "from_key": from_key,
            "to_key": to_key,
            "attrs": attrs or {},
        })

    async def find_relationships(self, rel_type: str, from_label: str,
                                 from_key: Dict[str, Any],
                                 attrs: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        query = f"""
        MATCH (a:{_identifier(from_label)}{_property_map('from_key', from_key)})
              -[r:{_identifier(rel_type)}{_property_map('attrs', attrs)}]->(b)
        RETURN properties(b) AS target, properties(r) AS properties
        """
        return await self._read(query, {"from_key": from_key, "attrs": attrs or {}})

    async def delete_relationship(self, rel_type: str,
                                  from_label: str, from_key: Dict[str, Any],
                                  to_label: str, to_key: Dict[str, Any],
                                  attrs: Optional[Dict[str, Any]] = None) -> int:
        query = f"""
        MATCH (a:{_identifier(from_label)}{_property_map('from_key', from_key)})
              -[r:{_identifier(rel_type)}{_property_map('attrs', attrs)}]->
              (b:{_identifier(to_label)}{_property_map('to_key', to_key)})
        DELETE r
        RETURN count(r)
        """
        deleted = await self._write(query, {
            "from_key": from_key,
            "to_key": to_key,
            "attrs": attrs or {},
        })
        return deleted or 0

    async def get_node(self, label: str, key: Dict[str, Any]) -> Optional[GraphNode]:
        query = f"MATCH (n:{_identifier(label)}{_property_map('key', key)}) RETURN n LIMIT 1"
        records = await self._read(query, {"key": key})
        return records[0]["n"] if records else None

    async def get_node_by_id(self, element_id: str) -> Optional[GraphNode]:
        records = await self._read(
            "MATCH (n) WHERE elementId(n) = $id RETURN n LIMIT 1", {"id": element_id}
        )
        return records[0]["n"] if records else None

    async def run(self, query: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Execute an arbitrary query in a read transaction."""
        return await self._read(query, params)

    async def expand_calls(self, function_id: str) -> List[Dict[str, Any]]:
        query = f"""
        MATCH (a:{FUNCTION_LABEL})-[r:{CALLS}]->(b:{FUNCTION_LABEL})
        WHERE elementId(a) = $id OR elementId(b) = $id
        RETURN a AS source, r AS relationship, b AS target
        """
        return await self._read(query, {"id": function_id})

    async def get_database_stats(self) -> Dict[str, Any]:
        """Get database statistics."""
        node_records = await self._read(
            "MATCH (n) UNWIND labels(n) AS label RETURN label, count(*) AS count"
        )
        rel_records = await self._read(
            "MATCH ()-[r]->() RETURN type(r) AS type, count(*) AS count"
        )
        return {
            "nodes": {r["label"]: r["count"] for r in node_records},
            "relationships": {r["type"]: r["count"] for r in rel_records},
        }

    async def clear_database(self) -> None:
        """Clear all data from the database."""
        await self._write("MATCH (n) DETACH DELETE n RETURN count(*)", {})
        self.logger.info("Cleared all data from Neo4j database")

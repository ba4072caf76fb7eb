from typing import Any, Dict, List, Optional
import json

from ..config import settings
from ..exceptions import GraphQueryError, QueryGenerationError
from ..graph.base import GraphStore
from ..types import PlanAttempt, PlanResult, QueryResponse, QueryRoute
from ..utils.logger import app_logger
from .classifier import QueryClassifier
from .generator import CypherGenerator
from .subgraph import extract_subgraph


class QueryPlanner:
    """Answers natural-language queries from the graph or the summaries.

    Graph questions go through a generate/execute loop: each failed
    execution's error message is handed back to the generator verbatim,
    and the loop gives up after ``max_attempts`` candidates.
    """

    def __init__(self, graph_store: GraphStore, classifier: QueryClassifier,
                 generator: CypherGenerator, function_search=None, llm_service=None,
                 max_attempts: Optional[int] = None):
        self.graph_store = graph_store
        self.classifier = classifier
        self.generator = generator
        self.function_search = function_search
        self.llm_service = llm_service
        self.max_attempts = max_attempts or settings.query_max_attempts
        self.logger = app_logger.bind(component="query_planner")

    async def plan(self, query: str) -> PlanResult:
        """Generate and execute a graph query, correcting it on failure."""
        attempts: List[PlanAttempt] = []
        error: Optional[str] = None

        for attempt_number in range(1, self.max_attempts + 1):
            candidate = await self.generator.generate(query, error)
            try:
                records = await self.graph_store.run(candidate)
            except GraphQueryError as e:
                error = e.message
                attempts.append(PlanAttempt(query=candidate, error=error))
                self.logger.warning(
                    f"Attempt {attempt_number}/{self.max_attempts} failed: {error}"
                )
                continue

            attempts.append(PlanAttempt(query=candidate))
            self.logger.info(
                f"Query executed on attempt {attempt_number}, {len(records)} records"
            )
            return PlanResult(
                query_text=candidate,
                records=records,
                attempts=attempts,
                subgraph=extract_subgraph(records),
            )

        raise QueryGenerationError(query, attempts)

    async def search(self, query: str, top_k: Optional[int] = None) -> QueryResponse:
        """Classify the query and answer it from the chosen store."""
        decision = await self.classifier.classify(query)

        if decision.route is QueryRoute.GRAPH:
            return QueryResponse(decision=decision, plan=await self.plan(query))

        if self.function_search is None:
            raise RuntimeError("vector search is not configured")
        functions = await self.function_search.search(decision.search_text or query, top_k)
        return QueryResponse(decision=decision, functions=functions)

    def build_context(self, response: QueryResponse) -> str:
        """Plain-text rendering of a result for the answer prompt."""
        if response.plan is not None:
            return json.dumps(response.plan.subgraph.to_dict(), indent=2, default=str)

        lines = []
        for function in response.functions:
            lines.append(f"{function.rank}. {function.name} ({function.path})")
            if function.summary:
                lines.append(f"   {function.summary}")
        return "\n".join(lines)

    async def answer(self, query: str) -> Dict[str, Any]:
        """Natural-language answer plus the result it was drawn from."""
        if self.llm_service is None:
            raise RuntimeError("answer generation is not configured")

        response = await self.search(query)
        answer = await self.llm_service.answer_question(query, self.build_context(response))
        result = response.to_dict()
        result["answer"] = answer
        return result

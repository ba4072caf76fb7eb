from contextlib import asynccontextmanager
from typing import List, Dict, Any, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from .exceptions import QueryGenerationError
from .query.subgraph import function_call_context
from .utils.logger import app_logger


logger = app_logger.bind(component="api_server")


class QueryRequest(BaseModel):
    query: str
    top_k: Optional[int] = None


class SearchResponse(BaseModel):
    results: List[Dict[str, Any]]
    total_results: int


def create_app(services=None, start_enrichment: bool = True) -> FastAPI:
    """Build the HTTP API.

    Without ``services`` the configured backends are built at startup and
    closed at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.services is None
        if owned:
            from .services import build_services
            app.state.services = build_services()
            await app.state.services.setup()
        if start_enrichment:
            app.state.services.enrichment_queue.start()
        yield
        await app.state.services.enrichment_queue.stop()
        if owned:
            await app.state.services.close()

    app = FastAPI(title="GraphSense API", version="1.0.0", lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/functions/search", response_model=SearchResponse)
    async def search_functions(q: str = Query(..., min_length=1), top_k: Optional[int] = None):
        """Find functions by a description of what they do."""
        try:
            results = await app.state.services.function_search.search(q, top_k)
            return SearchResponse(
                results=[result.to_dict() for result in results],
                total_results=len(results),
            )
        except Exception as e:
            logger.error(f"Error searching functions: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @app.get("/functions/{function_id}")
    async def get_function(function_id: str):
        """Function record with its callers and callees."""
        try:
            record = await app.state.services.record_store.get(function_id)
            context = await function_call_context(app.state.services.graph_store, function_id)
        except Exception as e:
            logger.error(f"Error getting function {function_id}: {e}")
            raise HTTPException(status_code=500, detail=str(e))

        if record is None:
            raise HTTPException(status_code=404, detail="Function not found")

        result = record.to_dict()
        result["callers"] = [node.to_dict() for node in context["callers"]]
        result["callees"] = [node.to_dict() for node in context["callees"]]
        return result

    @app.post("/query/plan")
    async def plan_query(request: QueryRequest):
        """Classify a query and answer it with search results or a subgraph."""
        try:
            response = await app.state.services.planner.search(request.query, request.top_k)
            return response.to_dict()
        except QueryGenerationError as e:
            logger.warning(str(e))
            raise HTTPException(status_code=422, detail={
                "message": e.message,
                "attempts": [attempt.to_dict() for attempt in e.attempts],
            })
        except Exception as e:
            logger.error(f"Error planning query: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @app.post("/query/answer")
    async def answer_query(request: QueryRequest):
        """Natural-language answer over the query result."""
        try:
            return await app.state.services.planner.answer(request.query)
        except Exception as e:
            logger.error(f"Error answering query: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @app.get("/stats")
    async def get_stats():
        """Get database statistics."""
        try:
            return await app.state.services.get_stats()
        except Exception as e:
            logger.error(f"Error getting stats: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    return app

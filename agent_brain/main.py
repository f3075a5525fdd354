"""Agent Brain — FastAPI app serving the configured agent graphs.

Loads the config on startup. Exposes thread endpoints to start runs, resolve
approval pauses and inspect state, plus operational endpoints for health,
config viewing, and hot-reload.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from agent_brain import runtime
from agent_brain.agents.cache import invalidate as invalidate_cache
from agent_brain.config import GraphConfig, get_config, load_config, reload_config
from agent_brain.graph.errors import GraphError, ThreadStateError
from agent_brain.schemas import ApprovalDecisionRequest, RunRequest, ThreadStateResponse

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load config on startup."""
    config = load_config()
    logger.info(
        f"Agent Brain started (origins={config.allowed_origins}, "
        f"auth={'enabled' if config.api_key else 'disabled'}, "
        f"graphs={[g.id for g in config.graphs]})"
    )
    yield
    logger.info("Agent Brain shutting down")


# Load config early so we can read allowed_origins for CORS middleware.
_boot_config = load_config()

app = FastAPI(title="Agent Brain", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_boot_config.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Auth dependency
# ---------------------------------------------------------------------------


async def verify_api_key(request: Request) -> None:
    """Validate X-API-Key header against the configured key.
    If no api_key is set in config, auth is disabled (dev mode).
    """
    config = get_config()
    if not config.api_key:
        return  # Auth disabled, no key configured

    key = request.headers.get("X-API-Key")
    if key != config.api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


def _graph_or_404(graph_id: str) -> GraphConfig:
    graph = get_config().get_graph(graph_id)
    if graph is None:
        raise HTTPException(status_code=404, detail=f"Graph '{graph_id}' not found")
    return graph


# ---------------------------------------------------------------------------
# Thread endpoints
# ---------------------------------------------------------------------------


@app.post(
    "/graphs/{graph_id}/threads/{thread_id}/runs",
    dependencies=[Depends(verify_api_key)],
    response_model=ThreadStateResponse,
)
async def start_run(graph_id: str, thread_id: str, request: RunRequest):
    """Start a fresh run. Returns once the run completes or pauses."""
    graph = _graph_or_404(graph_id)
    try:
        return await runtime.start_run(get_config(), graph, thread_id, request.input)
    except ThreadStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except GraphError as e:
        logger.error(f"Run failed on {graph_id}/{thread_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Execution error: {e}")


@app.post(
    "/graphs/{graph_id}/threads/{thread_id}/approval",
    dependencies=[Depends(verify_api_key)],
    response_model=ThreadStateResponse,
)
async def resolve_approval(graph_id: str, thread_id: str, request: ApprovalDecisionRequest):
    """Approve, skip or reject the tool calls a paused thread is waiting on."""
    graph = _graph_or_404(graph_id)
    config = get_config()
    if runtime.thread_state(config, graph, thread_id) is None:
        raise HTTPException(status_code=404, detail=f"Thread '{thread_id}' not found")
    try:
        return await runtime.resolve_approval(config, graph, thread_id, request.decision)
    except ThreadStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except GraphError as e:
        logger.error(f"Resume failed on {graph_id}/{thread_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Execution error: {e}")


@app.get(
    "/graphs/{graph_id}/threads/{thread_id}",
    dependencies=[Depends(verify_api_key)],
    response_model=ThreadStateResponse,
)
async def get_thread(graph_id: str, thread_id: str):
    """Latest snapshot of a thread."""
    graph = _graph_or_404(graph_id)
    state = runtime.thread_state(get_config(), graph, thread_id)
    if state is None:
        raise HTTPException(status_code=404, detail=f"Thread '{thread_id}' not found")
    return state


# ---------------------------------------------------------------------------
# Operational endpoints
# ---------------------------------------------------------------------------


@app.get("/health")
async def health():
    """Liveness check."""
    config = get_config()
    return {"status": "healthy", "graphs": len(config.graphs)}


@app.get("/config")
async def get_current_config():
    """Return current config as JSON."""
    config = get_config()
    return config.model_dump(exclude={"api_key"})


@app.post("/reload", dependencies=[Depends(verify_api_key)])
async def reload():
    """Hot-reload the config file without a restart.

    Compiled graphs are rebuilt on next use; thread checkpoints are kept
    unless the checkpoint settings changed.
    """
    try:
        new_config = reload_config()
        invalidate_cache()
        return {"status": "reloaded", "graphs": len(new_config.graphs)}
    except Exception as e:
        logger.error(f"Reload failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Reload failed: {e}")

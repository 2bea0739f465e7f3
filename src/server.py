# File: server.py
# Main FastAPI application for the markdown preprocessing server.
# Exposes preprocessing, streaming-formula inspection, plugin-list assembly,
# and cache management over HTTP.

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

# --- Internal Project Imports ---
from config import (
    config_manager,
    get_active_profile,
    get_cache_capacity,
    get_host,
    get_port,
    get_ui_title,
)

import latex
import options as options_resolver
import pipeline
import plugins
from cache import BoundedCache
from models import (  # Pydantic models
    CacheStatusResponse,
    ErrorResponse,
    IncompleteFormulaRequest,
    IncompleteFormulaResponse,
    PluginRequest,
    PluginResponse,
    PreprocessRequest,
    PreprocessResponse,
    UpdateStatusResponse,
)
import utils  # Utility functions


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[
        logging.StreamHandler(),
    ],
)
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

content_cache = BoundedCache(capacity=get_cache_capacity())


def _log_access_urls(host: str, port: int):
    """Logs a readable startup summary with the docs URL."""
    display_host = "localhost" if host == "0.0.0.0" else host
    base_url = f"http://{display_host}:{port}"
    logger.info("")
    logger.info("========================================")
    logger.info("  Markdown Preprocessing Server is ready")
    logger.info("  API Docs:   %s/docs", base_url)
    if display_host != host:
        logger.info("  Listening:  http://%s:%s", host, port)
    logger.info("========================================")


def _overrides_dict(request_options) -> Optional[Dict[str, Any]]:
    if request_options is None:
        return None
    return request_options.model_dump(exclude_none=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manages application startup and shutdown events."""
    logger.info("Preprocessing Server: Initializing application...")
    logger.info(
        "Active profile: %s, cache capacity: %d",
        get_active_profile(),
        content_cache.capacity,
    )
    _log_access_urls(get_host(), get_port())
    logger.info("Application startup sequence complete.")
    try:
        yield
    finally:
        logger.info("Preprocessing Server: Application shutdown sequence initiated...")
        content_cache.clear()
        logger.info("Preprocessing Server: Application shutdown complete.")


# --- FastAPI Application Instance ---
app = FastAPI(
    title=get_ui_title(),
    description="Prepares chat markdown (LaTeX, code, citations) for safe rendering.",
    version="1.0.0",
    lifespan=lifespan,
)

# --- CORS Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*", "null"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# --- API Endpoints ---


@app.get("/health", tags=["Status"])
async def health_endpoint():
    return {"status": "ok"}


@app.post(
    "/preprocess",
    response_model=PreprocessResponse,
    tags=["Preprocessing"],
    summary="Preprocess markdown content for rendering",
    responses={
        500: {
            "model": ErrorResponse,
            "description": "Internal server error during preprocessing.",
        },
    },
)
async def preprocess_endpoint(request: PreprocessRequest):
    """
    Runs the stages enabled by the selected profile and overrides over the
    content. Output is memoized in the server cache.
    """
    timer = utils.StageTimer(
        enabled=config_manager.get_bool("server.enable_performance_monitor", False)
    )

    resolved = options_resolver.resolve_markdown_options(
        _overrides_dict(request.options), profile=request.profile
    )
    logger.debug("Resolved options: %s", resolved.model_dump())
    logger.debug("Input content (first 100 chars): '%s...'", request.content[:100])
    timer.mark("resolve_options")

    try:
        preprocessor = pipeline.MarkdownPreprocessor(resolved, cache=content_cache)
        processed, metadata = preprocessor.process_with_metadata(
            request.content, cache_key=request.cache_key
        )
    except Exception as e:
        logger.error(f"Error while preprocessing content: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Preprocessing failed: {e}")
    timer.mark("preprocess")
    if timer.enabled:
        metadata["timings_ms"] = timer.durations_ms()
        logger.debug(timer.summary())

    logger.info(
        "/preprocess complete: in_len=%d, out_len=%d, cache_hit=%s, citations=%d, delimiters=%d",
        metadata["input_length"],
        metadata["output_length"],
        metadata["cache_hit"],
        metadata["citations_transformed"],
        metadata["delimiters_converted"],
    )

    return PreprocessResponse(
        content=processed, cached=metadata["cache_hit"], metadata=metadata
    )


@app.post(
    "/formula/incomplete",
    response_model=IncompleteFormulaResponse,
    tags=["Streaming"],
    summary="Inspect the dangling display formula of streamed content",
)
async def incomplete_formula_endpoint(request: IncompleteFormulaRequest):
    formula = latex.extract_incomplete_formula(request.content)
    renderable = latex.is_last_formula_renderable(request.content)
    logger.debug("Incomplete formula length=%d, renderable=%s", len(formula), renderable)
    return IncompleteFormulaResponse(formula=formula, renderable=renderable)


@app.post(
    "/plugins",
    response_model=PluginResponse,
    tags=["Renderer"],
    summary="Assemble remark/rehype plugin lists for the renderer",
)
async def plugins_endpoint(request: PluginRequest):
    resolved = options_resolver.resolve_markdown_options(
        _overrides_dict(request.options), profile=request.profile
    )
    plugin_lists = plugins.create_plugins(resolved)
    return PluginResponse(
        remark_plugins=plugin_lists.remark_plugins_list,
        rehype_plugins=plugin_lists.rehype_plugins_list,
    )


@app.get("/cache", response_model=CacheStatusResponse, tags=["Cache"])
async def cache_status_endpoint():
    return CacheStatusResponse(size=content_cache.size, capacity=content_cache.capacity)


@app.delete("/cache", response_model=UpdateStatusResponse, tags=["Cache"])
async def clear_cache_endpoint():
    cleared = content_cache.size
    content_cache.clear()
    logger.info("Cleared %d cached preprocessing result(s).", cleared)
    return UpdateStatusResponse(
        message=f"Cleared {cleared} cached entries.", cleared_entries=cleared
    )


# --- Main Execution ---
if __name__ == "__main__":
    server_host = get_host()
    server_port = get_port()

    logger.info(f"Starting Preprocessing Server on http://{server_host}:{server_port}")

    import uvicorn

    uvicorn.run(
        "server:app",
        host=server_host,
        port=server_port,
        log_level="info",
        workers=1,
        reload=False,
    )

"""
PDF Combinator - Backend API
Queue PDFs in any order, merge them into one document, download the result.

Install dependencies:
pip install -e ".[test]"

Run server (from services/api):
uvicorn main:app --host 0.0.0.0 --port 8000
"""

import asyncio
import contextvars
import logging
import os
import time
import uuid

from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.sessions import get_session_store
from settings import get_settings

# ========== Request Context for Tracing ==========
request_id_var = contextvars.ContextVar('request_id', default=None)
request_start_time_var = contextvars.ContextVar('request_start_time', default=None)

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

ALLOWED_ORIGINS = settings.get_origins_list()

# ============================================================================
# FASTAPI APP
# ============================================================================

app = FastAPI(
    title="PDF Combinator API",
    description="Combine multiple PDF files into one document, in any order",
    version="1.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# ========== Request Tracing Middleware ==========
@app.middleware("http")
async def request_tracing_middleware(request, call_next):
    """Add request_id and timing to all requests."""
    request_id = str(uuid.uuid4())[:8]
    request_id_var.set(request_id)
    request_start_time_var.set(time.time())

    response = await call_next(request)

    latency = time.time() - request_start_time_var.get()

    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code} "
        f"({round(latency * 1000, 2)} ms) [{request_id}]"
    )

    response.headers["X-Request-ID"] = request_id
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Request-ID"],
)

@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"}
    )

# ============================================================================
# ENDPOINTS
# ============================================================================
@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "sessions": len(get_session_store()),
        "version": "1.0"
    }


@app.get("/healthz")
async def healthz():
    """
    Kubernetes-style liveness probe.
    Returns 200 if the application is running.
    """
    return {
        "status": "ok",
        "timestamp": time.time(),
        "version": "1.0"
    }


@app.get("/")
async def root():
    """API root endpoint"""
    return {
        "message": "PDF Combinator API",
        "version": "1.0",
        "status": "running",
        "docs": "/docs"
    }


from routers import sessions as sessions_router
app.include_router(sessions_router.router)


@app.on_event("startup")
async def startup_event():
    # Caps concurrent merges across all sessions
    app.state.merge_semaphore = asyncio.Semaphore(settings.max_parallel_merges)
    logger.info("PDF Combinator API starting up...")
    logger.info(f"Allowed origins: {ALLOWED_ORIGINS}")
    logger.info(f"Max parallel merges: {settings.max_parallel_merges}")
    if settings.max_file_size_bytes or settings.max_total_size_bytes:
        logger.info(
            f"Upload limits: per-file={settings.max_file_size_bytes or 'off'} "
            f"total={settings.max_total_size_bytes or 'off'}"
        )
    else:
        logger.info("Upload limits: disabled")

@app.on_event("shutdown")
async def shutdown_event():
    logger.info("PDF Combinator API shutting down...")

if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")

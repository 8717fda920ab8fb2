"""HTTP trigger for the ingestion pipeline.

Every route requires ``Authorization: Bearer <secret>``, where the secret is
read from the environment variable named by ``api.cron_secret_env``. An unset
secret rejects every request.
"""

import hmac
import logging
import os
import threading

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from src.core.config import Settings
from src.pipeline.orchestrator import Pipeline

logger = logging.getLogger(__name__)


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def create_app(pipeline: Pipeline, settings: Settings) -> FastAPI:
    """Build the FastAPI app around an assembled pipeline.

    Every route that touches the database holds ``app.state.pipeline_lock``:
    the pipeline shares one sqlite connection across threadpool workers.
    """
    app = FastAPI(title="jobs-ingest-pipeline")
    lock = threading.Lock()
    app.state.pipeline_lock = lock

    def require_cron_secret(request: Request) -> None:
        secret = os.environ.get(settings.api.cron_secret_env)
        token = _bearer_token(request)
        if not secret or token is None or not hmac.compare_digest(token, secret):
            logger.warning("Rejected unauthorized %s %s", request.method, request.url.path)
            raise HTTPException(status_code=401, detail="Unauthorized")

    def server_error(message: str, exc: Exception) -> JSONResponse:
        logger.exception("%s", message)
        return JSONResponse(status_code=500, content={"error": message, "details": str(exc)})

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.post("/api/cron/process-task", dependencies=[Depends(require_cron_secret)])
    def process_task():
        try:
            with lock:
                result = pipeline.runner.run_once()
        except Exception as e:
            return server_error("Failed to process task", e)
        return result.to_response()

    @app.get("/api/cron/process-task", dependencies=[Depends(require_cron_secret)])
    def queue_status():
        try:
            with lock:
                stats = pipeline.queue.queue_stats()
        except Exception as e:
            return server_error("Failed to get queue status", e)
        return {
            "queue": {
                "pending": stats["pending"],
                "processing": stats["processing"],
                "completed": stats["completed"],
                "failed": stats["failed"],
            }
        }

    @app.post("/api/cron/queue-sources", dependencies=[Depends(require_cron_secret)])
    def queue_sources():
        try:
            with lock:
                summary = pipeline.queue.enqueue_active_sources()
        except Exception as e:
            return server_error("Failed to queue sources", e)
        return {"success": True, **summary}

    @app.post("/api/cron/score-sources", dependencies=[Depends(require_cron_secret)])
    def score_sources():
        try:
            with lock:
                summary = pipeline.scorer.recalculate_all_scores()
        except Exception as e:
            return server_error("Failed to score sources", e)
        return {"success": True, **summary}

    return app

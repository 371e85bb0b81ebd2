"""
ARQ Worker Configuration

Running the Worker:
------------------
    # From project root directory
    arq knowledge_base.worker.WorkerSettings

    # With verbose logging
    arq knowledge_base.worker.WorkerSettings --verbose

Worker Lifecycle:
----------------
1. Worker starts and connects to Redis
2. Worker calls startup()
3. Worker polls Redis for jobs and runs process_document for each
4. On shutdown, worker calls shutdown()

Several workers can share one queue; jobs are distributed automatically.
Job ids are derived from the document id, so a document is never
queued twice.
"""

import logging
from typing import Any, Dict

from knowledge_base.core.config import settings
from knowledge_base.db.redis import get_arq_redis_settings
from knowledge_base.tasks.document_tasks import process_document

# ============================================================
# Logging Configuration
# ============================================================

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


# ============================================================
# Startup and Shutdown Hooks
# ============================================================

async def startup(ctx: Dict[str, Any]) -> None:
    """
    Called when worker starts.

    Builds the pipeline and checks the embedding API once, so a bad
    key or an unreachable index shows up in the logs before any job.
    """
    logger.info("ARQ Worker starting up...")

    try:
        from knowledge_base.ai.rag.embedder import warmup_model
        model_info = warmup_model()
        logger.info(f"Embedding model ready: {model_info['name']}")
        ctx['embedding_model'] = model_info['name']
    except Exception as e:
        logger.warning(f"Embedding API warmup failed: {e}")

    from knowledge_base.ai.rag.pipeline import get_document_pipeline
    pipeline = get_document_pipeline()
    ctx['pipeline'] = pipeline

    for name, reachable in pipeline.vector_store.health().items():
        if reachable:
            logger.info(f"Vector index '{name}' reachable")
        else:
            logger.warning(f"Vector index '{name}' not reachable yet")

    logger.info("ARQ Worker ready to process jobs")


async def shutdown(ctx: Dict[str, Any]) -> None:
    """Called when worker shuts down."""
    logger.info("ARQ Worker shutting down...")

    from knowledge_base.ai.rag.pipeline import reset_document_pipeline
    from knowledge_base.db.vector_store import reset_vector_store
    from knowledge_base.db.database import engine

    reset_document_pipeline()
    reset_vector_store()
    await engine.dispose()

    logger.info("ARQ Worker shutdown complete")


# ============================================================
# Worker Configuration Class
# ============================================================

class WorkerSettings:
    """
    ARQ Worker settings.

    Discovered by ARQ when you run:
        arq knowledge_base.worker.WorkerSettings
    """

    # ========================================
    # Task Functions
    # ========================================
    functions = [
        process_document,
    ]

    # ========================================
    # Redis Connection
    # ========================================
    redis_settings = get_arq_redis_settings()

    # ========================================
    # Lifecycle Hooks
    # ========================================
    on_startup = startup
    on_shutdown = shutdown

    # ========================================
    # Job Settings
    # ========================================
    job_timeout = 600      # 10 minutes (large PDFs, slow indexes)
    keep_result = 3600     # 1 hour
    # Failures are recorded on the document and retried via reprocess
    max_tries = 1

    # ========================================
    # Concurrency Settings
    # ========================================
    max_jobs = 5           # Up to 5 documents in parallel
    poll_delay = 0.5

    health_check_interval = 10

"""
Background Tasks Module

Task functions executed by the ARQ worker.

How Tasks Work:
--------------
1. The API enqueues a job: await pool.enqueue_job('process_document', document_id=...)
2. Redis stores the job in a queue
3. An ARQ worker picks up the job and runs the task function
4. The result (or error) is stored back in Redis

Task functions receive a `ctx` dict:
- ctx['redis']: Redis connection for the worker
- ctx['job_id']: Unique ID of this job
- ctx['job_try']: Which retry attempt this is (1, 2, 3...)

Running Workers:
---------------
    arq knowledge_base.worker.WorkerSettings
"""

from knowledge_base.tasks.document_tasks import process_document, ProcessingError

__all__ = [
    "process_document",
    "ProcessingError",
]

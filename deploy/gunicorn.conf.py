"""Gunicorn configuration for the writing feedback service.

Usage:
    gunicorn main:app -c deploy/gunicorn.conf.py

Worker count and recycling depend on the feedback store: the in-memory
store lives inside one process, so without Redis the service runs a single
worker that is never recycled.
"""

import multiprocessing
import os

from config.settings import get_settings

_settings = get_settings()
_shared_store = _settings.feedback_store_type == "redis" and bool(_settings.redis_url)

bind = os.getenv("BIND", f"0.0.0.0:{_settings.service_port}")
worker_class = "uvicorn.workers.UvicornWorker"

if _shared_store:
    workers = int(os.getenv("WORKERS", min(multiprocessing.cpu_count(), 4)))
    max_requests = 3000
    max_requests_jitter = 500
else:
    workers = 1
    max_requests = 0

# Longer than two back-to-back generation calls
timeout = 2 * _settings.llm_timeout + 60
# Open streams get one more generation call's worth of time on shutdown
graceful_timeout = _settings.llm_timeout
keepalive = 75

accesslog = "-"
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "debug" if _settings.debug else "info")

proc_name = "writing-feedback-stream"


def on_starting(server):
    server.log.info(
        "Starting writing feedback service: workers=%d timeout=%ds store=%s bind=%s",
        workers,
        timeout,
        "redis" if _shared_store else "memory",
        bind,
    )
    if not _shared_store and os.getenv("WORKERS"):
        server.log.warning("WORKERS ignored: the in-memory feedback store needs a single worker")

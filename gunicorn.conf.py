"""
Gunicorn configuration for ThreatGate production deployment.

Usage:
    gunicorn threatgate.main:app -c gunicorn.conf.py
"""

import multiprocessing
import os

# Bind to all interfaces on port 8000
bind = os.getenv("BIND", "0.0.0.0:8000")

# Gate checks are short DB round-trips; size workers to cores.
workers = int(os.getenv("WEB_CONCURRENCY", multiprocessing.cpu_count() * 2 + 1))

# Use Uvicorn's ASGI worker for FastAPI
worker_class = "uvicorn.workers.UvicornWorker"

# /internal/re_evaluate runs a whole batch; keep above RE_EVAL_BUDGET_SECONDS
timeout = int(os.getenv("GUNICORN_TIMEOUT", "300"))

# Keep-alive connections (seconds)
keepalive = 5

# Logging
accesslog = "-"  # stdout
errorlog = "-"   # stderr
loglevel = "info"

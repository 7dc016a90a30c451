"""Gunicorn configuration for production deployment.

Reads settings from environment variables (same as config.py).
No hardcoded values - everything from .env file.

Usage:
    gunicorn main:app -c gunicorn.conf.py
"""
import os

# Load from environment (same vars used by config.py)
host = os.getenv("HOST", "0.0.0.0")
port = os.getenv("PORT", "3000")
workers_env = os.getenv("WORKERS", "1")
log_level = os.getenv("LOG_LEVEL", "INFO").lower()
debug = os.getenv("DEBUG", "false").lower() == "true"

# Bind - use HOST and PORT from .env
bind = f"{host}:{port}"

# Workers - build single-flight and the build cap are per process, so each
# extra worker can run its own copy of a build and its own MAX_CONCURRENT_BUILDS.
workers = max(1, int(workers_env))
worker_class = "uvicorn.workers.UvicornWorker"

# Timeouts - configurable via env; archive builds can be slow on first download
timeout = int(os.getenv("GUNICORN_TIMEOUT", "300"))
graceful_timeout = int(os.getenv("GUNICORN_GRACEFUL_TIMEOUT", "30"))
keepalive = int(os.getenv("GUNICORN_KEEPALIVE", "5"))

# Restart workers periodically to prevent memory leaks
max_requests = int(os.getenv("GUNICORN_MAX_REQUESTS", "10000"))
max_requests_jitter = int(os.getenv("GUNICORN_MAX_REQUESTS_JITTER", "1000"))

# Logging - use LOG_LEVEL from .env
accesslog = "-" if not debug else None
errorlog = "-"
loglevel = log_level

# Process naming
proc_name = "photo-downloads"

# Preload app for faster worker startup (disable in debug for reload)
preload_app = not debug

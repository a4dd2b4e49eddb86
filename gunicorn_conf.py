"""
Gunicorn configuration file for Bookkeeper production deployment.

Run with:
    gunicorn -c gunicorn_conf.py bookkeeper.main:app
"""
import os

# Server socket
bind = os.getenv("BOOKKEEPER_BIND", "0.0.0.0:8000")

# The maximum number of pending connections
backlog = 2048

# Worker processes
# Staged imports and change versions live in process memory, so a single
# worker keeps every request of an owner on the same state
workers = 1

# UvicornWorker provides async support required by FastAPI
worker_class = "uvicorn.workers.UvicornWorker"

# The maximum number of simultaneous clients per worker
worker_connections = 1000

# Workers silent for more than this many seconds are killed and restarted
# Statement imports are bounded by BOOKKEEPER_MAX_IMPORT_ROWS, so 30s is plenty
timeout = 30

# The number of seconds to wait for requests on a Keep-Alive connection
keepalive = 2

# Logging configuration
# Log to stdout/stderr; application events are rendered by structlog
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("BOOKKEEPER_LOG_LEVEL", "info").lower()

# Access log format with response time
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

# Process naming
proc_name = "bookkeeper"

# Don't daemonize (systemd manages the process)
daemon = False
pidfile = None

# Set to False for safety with SQLite
preload_app = False

# Graceful timeout for worker shutdown
graceful_timeout = 30

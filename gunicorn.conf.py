"""
Gunicorn configuration for production deployment.

Transitions are serialized per entity with in-process locks, so all workers
must share one database that enforces row locks (PostgreSQL); the row locks
are what serialize transitions across workers.
"""
import os

# Server socket
bind = os.getenv("GUNICORN_BIND", "0.0.0.0:8000")
backlog = 2048

# Worker processes
workers = int(os.getenv("GUNICORN_WORKERS", 2))
worker_class = "uvicorn.workers.UvicornWorker"
worker_connections = 100

# Worker lifecycle
max_requests = 1000  # Restart worker after 1000 requests
max_requests_jitter = 100

# Timeouts
timeout = 30
keepalive = 5
graceful_timeout = 30  # In-flight transitions finish or roll back before exit

# Process naming
proc_name = "internship_workflow_api"

# Server mechanics
daemon = False  # Docker handles this
pidfile = None
umask = 0

# Logging
accesslog = "-"  # Log to stdout
errorlog = "-"   # Log to stderr
loglevel = os.getenv("LOG_LEVEL", "info").lower()
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'


# Server hooks
def on_starting(server):
    """Called just before the master process is initialized."""
    server.log.info("Starting Gunicorn server")


def when_ready(server):
    """Called just after the server is started."""
    server.log.info("Gunicorn server is ready. Spawning workers")


def worker_abort(worker):
    """Called when a worker is aborted (timeout); its open transaction is rolled back by the database."""
    worker.log.info("Worker received SIGABRT signal")

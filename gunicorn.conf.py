"""
Gunicorn configuration for the MarketOS API

Uvicorn workers under Gunicorn. Scheduled jobs run in the Prefect worker
(workflows/scheduled_jobs.py), never inside API workers.
"""

import multiprocessing
import os

# Server socket
bind = os.getenv("BIND", "0.0.0.0:8000")
backlog = 2048

# Worker processes
workers = int(os.getenv("WORKERS", multiprocessing.cpu_count() * 2 + 1))
worker_class = "uvicorn.workers.UvicornWorker"
max_requests = 10000
max_requests_jitter = 1000
# manual syncs of many integrations can take a while
timeout = 180
keepalive = 5
graceful_timeout = 30

proc_name = "marketos-api"

# Logging
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()
accesslog = "-"
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

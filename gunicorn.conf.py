"""
Gunicorn configuration for the SkillCheck evaluation API.

Requests spend most of their time waiting on the database and on LLM or
embedding calls, so workers use gevent.
"""

import os

# Server socket
bind = os.getenv("GUNICORN_BIND", "0.0.0.0:5000")
backlog = 2048

# Worker processes
workers = int(os.getenv("GUNICORN_WORKERS", 4))
worker_class = "gevent"
worker_connections = 1000

# Selection may run a criteria call plus up to three generation rounds
timeout = 180
graceful_timeout = 60

keepalive = 5
proc_name = "skillcheck"

# Logging
accesslog = "-"  # stdout
errorlog = "-"   # stderr
loglevel = os.getenv("GUNICORN_LOG_LEVEL", "info")

# Access log format
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'


def post_fork(server, worker):
    server.log.info(f"Evaluation worker ready (pid: {worker.pid})")


# Restart workers after this many requests to bound memory growth
max_requests = 1000
max_requests_jitter = 100

"""
Gunicorn entry point for the evaluation API.

Usage: gunicorn -c gunicorn.conf.py 'skillcheck.wsgi:app'
"""

# Must run before anything imports socket or ssl
from gevent import monkey
monkey.patch_all()

import sys
import logging

from skillcheck.app import create_app

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)

# Provider SDKs and SQLAlchemy are chatty at INFO
for noisy in ("httpx", "httpcore", "openai", "sqlalchemy", "werkzeug"):
    logging.getLogger(noisy).setLevel(logging.WARNING)

app = create_app()

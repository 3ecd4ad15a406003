"""WSGI entry point for the metrics service."""

import os

from metrics_app import create_app

app = create_app(os.getenv("FLASK_ENV", "production"))

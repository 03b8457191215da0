"""Gunicorn configuration for production.

Run with: gunicorn -c gunicorn.conf.py
"""
import os

wsgi_app = "zakat_engine:create_app()"

# Server socket
bind = f"0.0.0.0:{os.environ.get('PORT', '8080')}"

# Worker processes
workers = int(os.environ.get('GUNICORN_WORKERS', '2'))
worker_class = 'sync'
worker_connections = 1000
# Provider fetches time out after PRICE_FETCH_TIMEOUT_SECONDS (8 s by default)
timeout = 30
keepalive = 2

# Logging
accesslog = '-'
errorlog = '-'
loglevel = 'info'

# Process naming
proc_name = 'zakat-engine'

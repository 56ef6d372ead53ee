import os

wsgi_app = "dormmate.main:app"
bind = os.environ.get("DORMMATE_BIND", "127.0.0.1:8000")
# The change feed, revoked tokens and chat history live in process memory.
workers = int(os.environ.get("WEB_CONCURRENCY", "1"))
worker_class = "uvicorn.workers.UvicornWorker"
timeout = 60
graceful_timeout = 30
keepalive = 5
loglevel = "info"
accesslog = "-"
errorlog = "-"

import multiprocessing
import os


bind = os.getenv("GUNICORN_BIND", "0.0.0.0:8000")
# Short JSON requests holding a pooled DB connection each; one worker per core plus one.
workers = int(os.getenv("WEB_CONCURRENCY", max(2, multiprocessing.cpu_count() + 1)))
worker_class = "sync"
timeout = int(os.getenv("GUNICORN_TIMEOUT", "30"))
graceful_timeout = 20
keepalive = 5
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "INFO").lower()

wsgi_app = "registro_horas.wsgi:app"

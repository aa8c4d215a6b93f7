# gunicorn.conf.py
import multiprocessing
import os

wsgi_app = "convo_api.wsgi:application"
bind = os.getenv("GUNICORN_BIND", f"0.0.0.0:{os.getenv('PORT', '8000')}")
proc_name = "convo-api"

# Workers
workers = int(os.getenv("GUNICORN_WORKERS", multiprocessing.cpu_count() * 2 + 1))
threads = int(os.getenv("GUNICORN_THREADS", 1))
timeout = int(os.getenv("GUNICORN_TIMEOUT", 30))
graceful_timeout = 30
max_requests = int(os.getenv("GUNICORN_MAX_REQUESTS", 1000))
max_requests_jitter = 100

# Logging
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("GUNICORN_LOG_LEVEL", "info")
access_log_format = '%(h)s "%(r)s" %(s)s %(b)s %(M)sms'

forwarded_allow_ips = os.getenv("FORWARDED_ALLOW_IPS", "*")


def worker_abort(worker):
    worker.log.warning(f"Worker {worker.pid} aborted after timeout")

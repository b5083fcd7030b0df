# gunicorn configuration file
import os

# Server socket
bind = f"0.0.0.0:{os.environ.get('PORT', '10000')}"

# Worker processes
# The subscription registry is per process: streams only see events
# published by their own worker.
workers = int(os.environ.get('WEB_CONCURRENCY', 1))
worker_class = 'gthread'
threads = int(os.environ.get('GUNICORN_THREADS', 8))
worker_connections = 1000
max_requests = 1000
max_requests_jitter = 100

# Timeouts
timeout = 60
keepalive = 5

# Logging
accesslog = '-'  # Log to stdout
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(L)s'
errorlog = '-'  # Log to stderr
loglevel = 'info'
capture_output = True

# Process naming
proc_name = 'buslink'

reload = False

wsgi_app = 'wsgi:app'

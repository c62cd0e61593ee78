"""
Waitress WSGI entry point for production deployment.

Usage::

    python wsgi.py

Waitress is a pure-Python WSGI server, so the same entry point runs on
Linux containers and Windows hosts alike.  ``WAITRESS_THREADS`` sizes
the request thread pool; analysis workflows run on the orchestrator's
own worker threads.
"""

import os

from waitress import serve

from app import create_app

# Force production config when running via this entry point.
app = create_app(os.environ.get("FLASK_ENV", "production"))

if __name__ == "__main__":
    host = os.environ.get("WAITRESS_HOST", "127.0.0.1")
    port = int(os.environ.get("WAITRESS_PORT", "5000"))
    threads = int(os.environ.get("WAITRESS_THREADS", "8"))
    print(f"Starting {app.config['APP_NAME']} on {host}:{port}")
    serve(app, host=host, port=port, threads=threads)

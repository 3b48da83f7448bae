"""
wsgi.py — Entry point for production servers.

Usage:
  gunicorn -k uvicorn.workers.UvicornWorker wsgi:application
  python wsgi.py            (single uvicorn worker, development)

The app object is imported here so the module name is stable regardless of
how the server is invoked.
"""

import os

from app import app as application  # noqa: F401  (servers look for 'application')

if __name__ == '__main__':
    import uvicorn

    uvicorn.run(application, host='0.0.0.0', port=int(os.getenv('PORT', '5000')))

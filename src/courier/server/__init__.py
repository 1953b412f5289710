"""Production server entry points (gunicorn, WSGI)."""

"""WSGI entry point: ``gunicorn wsgi:app``."""

from sitehub import create_app

app = create_app()

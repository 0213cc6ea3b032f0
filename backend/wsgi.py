# Overview: WSGI entry point (FLASK_APP=wsgi.py, gunicorn wsgi:app).

from clinic import create_app

app = create_app()

# backend/wsgi.py
from agrocaja import create_app

app = create_app()

# backend/wsgi.py
from kosbook import create_app

app = create_app()

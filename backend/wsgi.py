# backend/wsgi.py
from sillon import create_app

app = create_app()

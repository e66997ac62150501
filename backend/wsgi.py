# backend/wsgi.py
from tradie import create_app

app = create_app()

# backend/wsgi.py
from partspos import create_app

app = create_app()

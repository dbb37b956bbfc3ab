# backend/wsgi.py
from sareeshop import create_app

app = create_app()

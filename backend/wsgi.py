# backend/wsgi.py
from closet import create_app

app = create_app()

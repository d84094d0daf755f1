# backend/wsgi.py
from sampleledger import create_app

app = create_app()

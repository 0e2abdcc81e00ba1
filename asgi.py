"""
asgi.py -- ASGI entry point for CommitStreams.

Settings come from the environment (.env supported) via get_settings().

Run with:  uvicorn asgi:app --reload
           python main.py serve
"""

from api.main import create_app

app = create_app()

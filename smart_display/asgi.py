"""
ASGI entry point: `uvicorn smart_display.asgi:app --reload`.
"""
from .app import create_app

app = create_app()

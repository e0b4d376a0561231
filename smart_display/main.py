#!/usr/bin/env python3
"""
Smart Display Service: runs the FastAPI application with uvicorn.
"""
import os

import uvicorn


def main() -> None:
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    reload_flag = os.getenv("DISPLAY_RELOAD", "0").lower() in ("1", "true", "yes")
    print(f"🚀 Starting Smart Display Service on {host}:{port}")
    uvicorn.run("smart_display.asgi:app", host=host, port=port, reload=reload_flag)


if __name__ == "__main__":
    main()

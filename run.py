#!/usr/bin/env python3
"""Startup script for the Mawjood API server."""
import os
import uvicorn

from app.config import settings

if __name__ == "__main__":
    # Platforms inject PORT; fall back to the configured port
    port = int(os.environ.get("PORT", settings.port))
    print(f"Starting Mawjood API ({settings.app_env}) on {settings.host}:{port}")
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=port,
        reload=settings.is_development,
        log_level="debug" if settings.debug else "info",
    )

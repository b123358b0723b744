#!/usr/bin/env python3
"""Main entry point for the AutoResearch FastAPI application."""

import os

import uvicorn

if __name__ == "__main__":
    os.environ.setdefault("ENVIRONMENT", "development")

    uvicorn.run(
        "autoresearch.main:app",
        host="0.0.0.0",
        port=int(os.environ.get("PORT", "5000")),
        reload=True,
        reload_dirs=["autoresearch"],
        log_level="info"
    )

#!/usr/bin/env python3
"""
Startup script for the receiptfill FastAPI server.

Usage:
    python run_api.py

Or with uvicorn directly:
    uvicorn receiptfill.api.main:app --reload --host 0.0.0.0 --port 8080
"""

import os

import uvicorn

if __name__ == "__main__":
    uvicorn.run(
        "receiptfill.api.main:app",
        host=os.getenv("RECEIPTFILL_HOST", "0.0.0.0"),
        port=int(os.getenv("RECEIPTFILL_PORT", "8080")),
        reload=os.getenv("RECEIPTFILL_RELOAD", "1") == "1",  # Auto-reload on code changes (dev mode)
        log_level="info",
    )

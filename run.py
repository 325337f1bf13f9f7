#!/usr/bin/env python3
"""Startup script for the fulfillment service."""
import os
import uvicorn

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8000))
    print(f"Starting ticket fulfillment on port {port}")
    uvicorn.run(
        "fulfillment.main:app",
        host="0.0.0.0",
        port=port,
        log_level="info"
    )

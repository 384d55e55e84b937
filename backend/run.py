#!/usr/bin/env python3
# backend/run.py
"""
Local server runner for the booking API.

Creates the tables on the configured database first, so a fresh SQLite file
works without migrations. Set DATABASE_URL to point at PostgreSQL.
"""
import os
import sys
from pathlib import Path

# Add backend to path
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))
os.chdir(backend_dir)

import uvicorn

if __name__ == "__main__":
    import app.init_db  # noqa: F401  creates tables on import

    port = int(os.getenv("PORT", "8000"))
    print(f"Starting Classbook API at http://localhost:{port} (docs at /docs)")

    uvicorn.run("app.main:app", host="0.0.0.0", port=port, reload=False, log_level="info")

"""
Runs the API with uvicorn for local development.

Usage:
    python scripts/serve.py [--port 8000] [--reload]
"""
import sys
import argparse
from pathlib import Path

import uvicorn

# --- Path Setup ---
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

if __name__ == '__main__':
    parser = argparse.ArgumentParser(description="Run the Tutor CRM API.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true")
    args = parser.parse_args()

    uvicorn.run(
        "src.tutor_crm_backend.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        reload_dirs=[str(PROJECT_ROOT / "src")] if args.reload else None,
    )

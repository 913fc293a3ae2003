#!/usr/bin/env python3
"""Start the BlueGuard backend with uvicorn."""
import argparse
import os
import sys

ROOT = os.path.dirname(os.path.abspath(__file__))
BACKEND = os.path.join(ROOT, "backend")


def main():
    parser = argparse.ArgumentParser(description="Run the BlueGuard backend")
    parser.add_argument("--host", default=os.environ.get("HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.environ.get("PORT", "8000")))
    parser.add_argument("--no-reload", action="store_true", help="Disable auto-reload")
    args = parser.parse_args()

    # Relative DATABASE_URL paths resolve against backend/
    os.chdir(BACKEND)
    sys.path.insert(0, BACKEND)

    import uvicorn
    uvicorn.run("blueguard.main:app", host=args.host, port=args.port, reload=not args.no_reload)


if __name__ == "__main__":
    main()

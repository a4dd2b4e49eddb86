#!/usr/bin/env python3

import sys
import subprocess
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))


def run_server():
    """Run the FastAPI development server with auto-reload"""
    print("Starting Bookkeeper server...")
    print("Server will be available at: http://localhost:8000")
    print("Press Ctrl+C to stop")

    cmd = [
        sys.executable,
        "-m",
        "uvicorn",
        "bookkeeper.main:app",
        "--host",
        "0.0.0.0",
        "--port",
        "8000",
        "--reload",
    ]

    try:
        subprocess.run(cmd, cwd=str(project_root))
    except KeyboardInterrupt:
        print("\nShutting down server...")


if __name__ == "__main__":
    run_server()

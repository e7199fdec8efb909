#!/usr/bin/env python3
"""
Banking App Entry Point

Starts the FastAPI server (port 8090 unless BANKING_API_PORT says otherwise).
"""

import sys

from banking_app.api import run_server
from banking_app.config import get_config


def main():
    config = get_config()
    print("Starting Banking App API...")
    print(f"Docs at: http://localhost:{config.api_port}/docs")

    try:
        run_server()
    except KeyboardInterrupt:
        print("\nShutting down Banking App API...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

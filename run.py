#!/usr/bin/env python3
"""
Finance Ledger Entry Point

Starts the FastAPI server on the configured host and port (default 5000).
"""

import sys

from finance_ledger.api import run_server
from finance_ledger.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("Starting Finance Ledger...")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server()
    except KeyboardInterrupt:
        print("\nShutting down Finance Ledger...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)

#!/usr/bin/env python3
"""
Loan Recovery Engine Entry Point

Starts the FastAPI server with the case lifecycle & reconciliation engine.
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from loan_recovery.api import run_server
from loan_recovery.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("📋 Starting Loan Recovery Case Engine...")
    print(f"🗄️  Storage backend: {config.storage_backend}")
    print("🔁 Bulk reconciliation keyed by (tenant, loan id)")
    print("💰 Payment ledger uses Decimal precision")
    print(f"🌐 API available at: http://localhost:{config.api_port}")
    print(f"📚 Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(host=config.api_host, port=config.api_port, debug=False)
    except KeyboardInterrupt:
        print("\n👋 Shutting down Loan Recovery Case Engine...")
    except Exception as e:
        print(f"❌ Error starting server: {e}")
        sys.exit(1)

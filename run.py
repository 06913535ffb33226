#!/usr/bin/env python3
"""
Account Core Entry Point

Loads the accounts file, starts the monthly interest scheduler and saves
the accounts again on shutdown.
"""

import sys
import threading
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from account_core.config import get_config
from account_core.logging_config import setup_logging
from account_core.system import AccountSystem


if __name__ == "__main__":
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format)

    print("🏦 Starting Account Core...")
    print(f"📄 Accounts file: {config.data_file}")
    print("💰 All financial calculations use Decimal precision")

    try:
        system = AccountSystem(config)
    except Exception as e:
        print(f"❌ Error starting account core: {e}")
        sys.exit(1)

    print(f"📊 {len(system.registry)} accounts loaded")
    system.start()
    print(f"⏰ Next interest run: {system.scheduler.next_run_at.isoformat()}")
    print()

    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        print("\n👋 Shutting down Account Core...")
    finally:
        if not system.shutdown():
            print("❌ Accounts could not be saved; see the log for details")

import os
import sys
from pathlib import Path

import uvicorn

# Add project root to path
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from leap.logger import setup_logging


def main():
    """Main entry point for the Leap Web Service."""
    setup_logging()

    reload_enabled = os.getenv("LEAP_RELOAD", "0").lower() in {"1", "true", "yes"}
    host = os.getenv("LEAP_HOST", "0.0.0.0")
    port = int(os.getenv("LEAP_PORT", "8010"))

    uvicorn.run(
        "web.backend.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload_enabled,
        reload_dirs=["web", "leap"] if reload_enabled else None,
    )


if __name__ == "__main__":
    main()

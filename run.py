#!/usr/bin/env python3
"""
Run the CASL Key verification web server.
"""

import uvicorn

from utils.config import Config


def main():
    """Start the web server."""
    config = Config.load()

    print(f"Starting CASL Key verification on http://{config.host}:{config.port}")
    print("Press Ctrl+C to stop")

    uvicorn.run(
        "web.app:create_app",
        factory=True,
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()

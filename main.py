"""
Railway entrypoint for the CASL Key verification service.

This is the ONLY Uvicorn entrypoint used in production.
Binds to 0.0.0.0:$PORT as required by Railway.
"""

import os
import uvicorn

if __name__ == "__main__":
    port = int(os.getenv("PORT", "8000"))
    print(f"Starting CASL Key verification on port {port}")

    # Import app here to ensure clean module loading
    from web.app import create_app

    uvicorn.run(create_app(), host="0.0.0.0", port=port)

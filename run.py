#!/usr/bin/env python3
"""
Run script for the authgate API.
This script launches the FastAPI server with the auth and secured routers mounted.
"""
import os
import sys
import traceback

import uvicorn

if __name__ == "__main__":
    try:
        if not os.getenv("JWT_SECRET_KEY"):
            print("JWT_SECRET_KEY is not set; refusing to start.")
            sys.exit(1)

        # Print information about the server
        print("Starting authgate API server...")
        print("Access the API at http://localhost:8000")
        print("API documentation at http://localhost:8000/docs")

        # Run the server
        uvicorn.run(
            "authgate.main:app",
            host="0.0.0.0",
            port=int(os.getenv("PORT", 8000)),
            reload=os.getenv("RELOAD", "false").lower() == "true",
            log_level="info"
        )
    except Exception as e:
        print(f"Error starting server: {e}")
        traceback.print_exc()
        sys.exit(1)

"""Entry point for running the API server."""

import os

import uvicorn

if __name__ == "__main__":
    host = os.getenv("API_HOST", "0.0.0.0")
    # API_PORT for local dev, PORT for PaaS platforms (Railway, Heroku, etc.)
    port = int(os.getenv("API_PORT") or os.getenv("PORT") or "8000")

    uvicorn.run(
        "api.main:app",
        host=host,
        port=port,
        log_level="info",
    )

"""
HTTP server entrypoint.

Runs `zoo.api.http_api.create_app` under uvicorn. Host and port come from
`ZOO_HOST`/`ZOO_PORT`; configuration errors surface before the socket opens
because the factory validates eagerly.
"""

import logging
import os

import uvicorn


def main():
    logging.basicConfig(
        level=logging.DEBUG if os.getenv("DEBUG") == "true" else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    uvicorn.run(
        "zoo.api.http_api:create_app",
        factory=True,
        host=os.getenv("ZOO_HOST", "127.0.0.1"),
        port=int(os.getenv("ZOO_PORT", "8000")),
    )


if __name__ == "__main__":
    main()

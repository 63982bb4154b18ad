import argparse
import logging

import uvicorn

from src.config.loader import get_int_env, get_str_env

logger = logging.getLogger(__name__)


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the orchestration API server")
    parser.add_argument("--host", default=get_str_env("HOST", "localhost"))
    parser.add_argument("--port", type=int, default=get_int_env("PORT", 8000))
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")
    args = parser.parse_args()

    logger.info("Starting orchestration API on %s:%d", args.host, args.port)
    uvicorn.run(
        "src.server.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=get_str_env("LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    main()

"""
Run the Splan API with uvicorn.
"""

import argparse
import logging

import uvicorn

from splan.config import get_settings


def main() -> None:
    parser = argparse.ArgumentParser(description="Splan API server")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=3000)
    parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("splan.app:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()

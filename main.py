"""
Question-Bank Ingest Service — Main Entry Point
===============================================
Starts the Flask-based ingest microservice.

Usage:
    python main.py                    # Default: 0.0.0.0:5000
    python main.py --port 8000        # Custom port
    python main.py --no-ai            # Heuristic tier only
"""

import argparse
import logging

from qbank_ingest.engine import IngestConfig
from qbank_ingest.server import create_app

logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] %(levelname)-8s %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Question-Bank Ingest Service")
    parser.add_argument("--host", default="0.0.0.0", help="Bind host")
    parser.add_argument("--port", type=int, default=5000, help="Bind port")
    parser.add_argument("--debug", action="store_true", help="Debug mode")
    parser.add_argument("--no-ai", action="store_true", help="Disable AI tier")
    args = parser.parse_args()

    config = IngestConfig.from_env()
    if args.no_ai:
        config.ai_enabled = False

    app = create_app({"INGEST_CONFIG": config})
    logger.info(f"Starting server on {args.host}:{args.port}")
    app.run(host=args.host, port=args.port, debug=args.debug)


if __name__ == "__main__":
    main()

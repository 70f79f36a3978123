import argparse
import asyncio
import logging

from .server import RelayServer


def main() -> None:
    parser = argparse.ArgumentParser(description="Cube draft event relay")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8765)
    parser.add_argument(
        "--history-limit",
        type=int,
        default=500,
        help="Events kept per session for clients that join late",
    )
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))
    server = RelayServer(history_limit=args.history_limit)
    asyncio.run(server.start(host=args.host, port=args.port))


if __name__ == "__main__":
    main()

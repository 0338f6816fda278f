import argparse
import logging
from pathlib import Path

import uvicorn

from .web import create_app


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Dodge Button server")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument(
        "--static-dir",
        type=Path,
        default=None,
        help="Directory containing the page to serve instead of the bundled one.",
    )
    parser.add_argument(
        "--log-level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Level for the dodge loggers and uvicorn.",
    )
    args = parser.parse_args(argv)

    if args.static_dir is not None and not args.static_dir.is_dir():
        parser.error(f"--static-dir {args.static_dir} is not a directory")

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = create_app(static_dir=args.static_dir)

    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        log_level=args.log_level,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

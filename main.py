"""Entry point for running the speed tracker server."""

from __future__ import annotations

import argparse

from speedtracker import bootstrap


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Connection speed tracker server")
    parser.add_argument("--config", help="Path to config.yaml", default="config.yaml")
    parser.add_argument("--host", default=None, help="Override web server host")
    parser.add_argument("--port", type=int, default=None, help="Override web server port")
    parser.add_argument("--debug", action="store_true", help="Enable Flask debug mode")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    context = bootstrap(args.config, host=args.host, port=args.port)
    context.start()

    web = context.config.web
    try:
        # The reloader would build a second context (and scheduler) in a child process.
        context.web_app.run(host=web.host, port=web.port, debug=args.debug, use_reloader=False, threaded=True)
    finally:
        context.shutdown()


if __name__ == "__main__":
    main()

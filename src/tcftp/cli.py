from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path

from .client import Client
from .config import ClientConfig, ServerConfig, check_port
from .constants import DEFAULT_DATA_CONNECT_DELAY
from .errors import ServerRefused, TcftpError
from .server import Server

FAREWELL = "tcftp server is exiting... Goodbye!"


class ArgumentParser(argparse.ArgumentParser):
    """argparse, but bad arguments exit with status 1 like every other failure."""

    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def cmd_serve(args: argparse.Namespace) -> int:
    config = ServerConfig(
        port=check_port(args.port),
        host=args.host,
        root=Path(args.root).resolve(),
        data_connect_delay=args.data_connect_delay,
    )
    server = Server(config)
    server.start()
    print("Welcome to tcftp! (press CTRL-C at any time to exit)", flush=True)

    # SIGTERM is treated like CTRL-C so both paths close the open sockets
    signal.signal(signal.SIGTERM, signal.default_int_handler)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.shutdown()
    print(f"\n{FAREWELL}", flush=True)
    return 0


def cmd_fetch(args: argparse.Namespace) -> int:
    config = ClientConfig(
        host=args.host,
        control_port=check_port(args.control_port, what="control port"),
        data_port=check_port(args.data_port, what="data port"),
        dest=Path(args.dest),
    )
    client = Client(config)
    if args.get is not None:
        result = client.get_file(args.get)
        print(f"File transfer complete: saved {result.saved_to}")
    else:
        result = client.list_directory()
        print(f"Directory contents of {args.host}:{args.control_port}:")
        print(result.text, end="" if result.text.endswith("\n") else "\n")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = ArgumentParser(prog="tcftp", description="Two-channel file transfer (control + data over TCP).")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    sub = p.add_subparsers(dest="cmd", required=True)

    serve = sub.add_parser("serve", help="serve the files of a directory")
    serve.add_argument("port", type=int)
    serve.add_argument("--host", default="")
    serve.add_argument("--root", default=".")
    serve.add_argument(
        "--data-connect-delay",
        type=float,
        default=DEFAULT_DATA_CONNECT_DELAY,
        help="seconds to wait after OK before connecting to the client's data port",
    )
    serve.set_defaults(func=cmd_serve)

    fetch = sub.add_parser("fetch", help="list the server directory or download a file")
    fetch.add_argument("host")
    fetch.add_argument("control_port", type=int)
    mode = fetch.add_mutually_exclusive_group(required=True)
    mode.add_argument("-l", dest="list", action="store_true", help="list the server directory")
    mode.add_argument("-g", dest="get", metavar="FILENAME", help="download FILENAME")
    fetch.add_argument("data_port", type=int)
    fetch.add_argument("--dest", default=".", help="directory to save downloads into")
    fetch.set_defaults(func=cmd_fetch)

    return p


def main(argv: list[str] | None = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")
    try:
        return int(args.func(args))
    except ServerRefused as exc:
        print(f"{args.host}:{args.control_port} says {exc.text}", file=sys.stderr)
        return 1
    except TcftpError as exc:
        logging.error("%s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())

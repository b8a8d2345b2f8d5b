"""
Command line launcher.

    sendrecv --peer-id=1234 [--server=wss://host:8443] [--rtmp-uri=rtmp://...]

Exit status is 0 on an orderly close, 1 on a fatal session or startup error
and 2 when no peer id was supplied.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from .client import TEARDOWN_TIMEOUT_SECONDS, SendRecvClient
from .config import DEFAULT_PROFILE, DEFAULT_SERVER_URL, build_config, resolve_settings
from .errors import ConfigError
from .runtime.lifecycle import EXIT_FAILURE, EXIT_OK
from .utils.logging import configure_logging

LOG = logging.getLogger(__name__)

EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sendrecv",
        description="Negotiate a send/receive WebRTC session with a signalling server.",
    )
    parser.add_argument("--peer-id", dest="peer_id", help="id of the remote peer to call (required)")
    parser.add_argument("--server", dest="server_url", help=f"signalling server URL (default {DEFAULT_SERVER_URL})")
    parser.add_argument("--rtmp-uri", dest="rtmp_uri", help="relay the composited video to this RTMP URI")
    parser.add_argument("--profile", default=DEFAULT_PROFILE, help="configuration profile to load")
    parser.add_argument("--profiles", type=Path, default=None, help="path to an alternative profiles YAML file")
    parser.add_argument("--log-level", dest="log_level", default=None, help="logging level (default INFO)")
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="accept self-signed TLS certificates from the signalling server",
    )
    return parser


def run(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level or "INFO")

    overrides = {
        "peer_id": args.peer_id,
        "server_url": args.server_url,
        "rtmp_uri": args.rtmp_uri,
        "log_level": args.log_level,
        "verify_tls": False if args.insecure else None,
    }
    try:
        settings = resolve_settings(args.profile, path=args.profiles, overrides=overrides)
    except ConfigError as exc:
        LOG.error("%s", exc)
        return EXIT_FAILURE

    if not settings.get("peer_id"):
        parser.print_usage(sys.stderr)
        LOG.error(
            "Please pass at least the peer-id from the signalling server, e.g. "
            "sendrecv --peer-id=1234 --server=%s",
            DEFAULT_SERVER_URL,
        )
        return EXIT_USAGE

    try:
        config = build_config(settings)
    except ConfigError as exc:
        LOG.error("%s", exc)
        return EXIT_FAILURE

    logging.getLogger().setLevel(config.log_level)
    LOG.info("Using peer id %s, on server: %s", config.peer_id, config.server_url)
    if config.rtmp_uri:
        LOG.info("Sending to RTMP URI %s", config.rtmp_uri)
    else:
        LOG.warning("Not sending to RTMP, no URI provided")

    client = SendRecvClient(config)
    try:
        return asyncio.run(client.run())
    except KeyboardInterrupt:
        LOG.info("Interrupted by user.")
        client.lifecycle.shutdown(EXIT_OK)
        client.lifecycle.wait(TEARDOWN_TIMEOUT_SECONDS)
        return EXIT_OK


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()

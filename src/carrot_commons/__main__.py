"""Entry point: python -m carrot_commons"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from .clients.base import HttpClient
from .config import Clients, Settings, build_clients, get_config
from .data import fetch_json_with_retry, store_cid_with_retry, store_json_with_retry
from .exceptions import CarrotCommonsError, ConfigError, ConfigFileOpenError
from .ipfs import pin_cid_with_retry, repin_with_retry

APP_NAME = "carrot-commons"

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m carrot_commons",
        description="Fetch, store and pin content-addressed JSON documents",
    )
    parser.add_argument("--config", type=Path, help="YAML config file (default: per-user config)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every request")

    commands = parser.add_subparsers(dest="command", required=True)

    fetch = commands.add_parser("fetch", help="Fetch a JSON document by CID")
    fetch.add_argument("cid")

    store_cid = commands.add_parser("store-cid", help="Ask the uploader to pin a CID")
    store_cid.add_argument("cid")

    store_json = commands.add_parser("store-json", help="Upload a JSON file and verify its CID")
    store_json.add_argument("file", type=Path)
    store_json.add_argument("cid", help="The CID the uploader is expected to return")

    pin = commands.add_parser("pin", help="Pin a CID on the gateway node")
    pin.add_argument("cid")

    repin = commands.add_parser("repin", help="Re-pin a CID on the third-party pinning service")
    repin.add_argument("cid")

    return parser


def load_settings(config_path: Path | None) -> Settings:
    """Settings from the YAML config when present, else from the environment."""
    try:
        raw = get_config(APP_NAME, dict, config_path)
    except ConfigFileOpenError:
        if config_path is not None:
            raise
        logger.debug("No per-user config file, using environment only")
        return Settings()  # type: ignore[call-arg]
    return Settings(**raw)


async def run(args: argparse.Namespace, settings: Settings) -> None:
    backoff = settings.backoff()

    async with build_clients(settings) as clients:
        if args.command == "fetch":
            document = await fetch_json_with_retry(
                args.cid, clients.mirror, clients.gateway, backoff
            )
            print(json.dumps(document, indent=2, ensure_ascii=False))

        elif args.command == "store-cid":
            await store_cid_with_retry(args.cid, _require(clients, "uploader"), backoff)
            print(f"Stored {args.cid}")

        elif args.command == "store-json":
            payload = json.loads(args.file.read_text(encoding="utf-8"))
            await store_json_with_retry(
                payload, args.cid, _require(clients, "uploader"), backoff
            )
            print(f"Stored {args.file} as {args.cid}")

        elif args.command == "pin":
            await pin_cid_with_retry(args.cid, clients.gateway, backoff)
            print(f"Pinned {args.cid}")

        elif args.command == "repin":
            await repin_with_retry(
                args.cid, clients.gateway, _require(clients, "third_party"), backoff
            )
            print(f"Re-pinned {args.cid}")


def _require(clients: Clients, name: str) -> HttpClient:
    client = getattr(clients, name)
    if client is None:
        raise ConfigError(f"missing {name}_base_url in configuration")
    return client


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = load_settings(args.config)
    except (CarrotCommonsError, ValidationError) as exc:
        logger.error("Configuration error: %s", exc)
        logger.error("Set CARROT_* environment variables or provide a YAML config file")
        sys.exit(1)

    try:
        asyncio.run(run(args, settings))
    except CarrotCommonsError as exc:
        logger.error("%s failed: %s", args.command, exc)
        sys.exit(1)


if __name__ == "__main__":
    main()

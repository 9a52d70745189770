#!/usr/bin/env python3
"""
dockcup - Container image update checker

Compares the digests of local Docker images (and any references given on
the command line) against their source registries.

Usage:
    dockcup check [IMAGE ...] [--raw] [--icons] [--timeout S]
    dockcup serve [--host HOST] [--port PORT]
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

import uvicorn

from api.routes import create_app
from config.loader import ConfigError, load_config
from config.settings import AppConfig, setup_logging
from docker_monitor.image_discovery import DockerImageLister
from models.config_models import CheckerConfig
from updates.update_checker import UpdateChecker
from utils.formatting import render_json, render_summary, render_text

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='dockcup',
        description='Check local container images for updates in their registries'
    )
    parser.add_argument(
        '-s', '--socket',
        default=AppConfig.SOCKET or None,
        help='Docker socket path or URL (env: DOCKCUP_SOCKET)'
    )
    parser.add_argument(
        '-c', '--config',
        default=AppConfig.CONFIG_PATH or None,
        help='Path to JSON or YAML config file (env: DOCKCUP_CONFIG_PATH)'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable debug logging'
    )

    subparsers = parser.add_subparsers(dest='command', required=True)

    check = subparsers.add_parser('check', help='Check images once and print the result')
    check.add_argument('images', nargs='*', metavar='IMAGE', help='Image references to check')
    check.add_argument('--raw', action='store_true', help='Print the JSON report')
    check.add_argument('--icons', action='store_true', help='Prefix statuses with icons')
    check.add_argument('--timeout', type=float, default=None, help='Abort the check after S seconds')

    serve = subparsers.add_parser('serve', help='Serve the JSON report over HTTP')
    serve.add_argument('--host', default=AppConfig.HOST, help='Bind address (env: DOCKCUP_HOST)')
    serve.add_argument('--port', type=int, default=AppConfig.PORT, help='Bind port (env: DOCKCUP_PORT)')

    return parser


async def run_check(
    config: CheckerConfig,
    references: List[str],
    raw: bool = False,
    icons: bool = False,
    timeout: Optional[float] = None
) -> str:
    """Run one check and return the rendered output."""
    lister = DockerImageLister(socket=config.socket)
    checker = UpdateChecker(config, image_lister=lister)
    try:
        run = await asyncio.wait_for(checker.run(references), timeout=timeout)
    finally:
        lister.close()

    if raw:
        return render_json(run)
    return f"{render_text(run.images, icons=icons)}\n\n{render_summary(run)}"


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    setup_logging('DEBUG' if args.verbose else AppConfig.LOG_LEVEL, AppConfig.LOG_FILE or None)

    try:
        AppConfig.validate()
        config = load_config(args.config, socket=args.socket)
    except (ConfigError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    if args.command == 'serve':
        checker = UpdateChecker(config, image_lister=DockerImageLister(socket=config.socket))
        logger.info(f"Serving update reports on {args.host}:{args.port}")
        uvicorn.run(create_app(checker), host=args.host, port=args.port, log_config=None)
        return 0

    try:
        output = asyncio.run(run_check(
            config,
            args.images,
            raw=args.raw,
            icons=args.icons,
            timeout=args.timeout
        ))
    except asyncio.TimeoutError:
        logger.error(f"Update check did not finish within {args.timeout}s")
        return 1

    print(output)
    return 0


if __name__ == '__main__':
    sys.exit(main())

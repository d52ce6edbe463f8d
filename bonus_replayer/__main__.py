#!/usr/bin/env python3
"""
Bonus Replayer CLI - Main Entry Point

Download and reprocess redeemed bonuses: mirrors the redeemed requests
stored under a container folder and posts each one to the redeem API.
"""

import argparse
import os
import sys
from typing import List, Optional

from loguru import logger
from prometheus_client import REGISTRY, write_to_textfile

from .config import get_storage_connection, pick_storage_config
from .errors import ReplayerError
from .pipeline import RedeemBonusesPipeline
from .replay.engine import (
    BODY_ENCODINGS,
    BODY_JSON_STRING,
    DEFAULT_API_URL,
    DEFAULT_DELAY_MS,
    DEFAULT_HTTP_TIMEOUT,
    ReplayEngine,
)
from .replay.report import OUTPUT_FORMATS
from .storage.fetcher import ON_ERROR_ABORT, ON_ERROR_POLICIES, BlobFetcher, create_s3_client


LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {message}"


def setup_logging(log_level: str, json_logs: bool = False):
    """Route loguru output to stderr so stdout only carries the report."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=log_level.upper(),
        format=LOG_FORMAT,
        serialize=json_logs
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='bonus-replayer',
        description='Download and reprocess redeemed bonuses'
    )

    parser.add_argument(
        '-o', '--tmp-dir', '--tmpDir',
        dest='tmp_dir',
        default='tmp',
        help='Temp directory for downloaded requests (default: tmp)'
    )

    parser.add_argument(
        '-c', '--container-folder', '--containerFolder',
        dest='container_folder',
        required=True,
        help='Container folder (object name prefix) to reprocess'
    )

    parser.add_argument(
        '-u', '--api-url', '--apiUrl',
        dest='api_url',
        default=DEFAULT_API_URL,
        help=f'Redeem API url (default: {DEFAULT_API_URL})'
    )

    parser.add_argument(
        '-k', '--api-key', '--apiKey',
        dest='api_key',
        default=os.getenv('REPLAYER_API_KEY'),
        help='Redeem API subscription key (default: $REPLAYER_API_KEY)'
    )

    parser.add_argument(
        '--delay-ms',
        dest='delay_ms',
        type=int,
        default=DEFAULT_DELAY_MS,
        help=f'Pause between replayed requests in milliseconds (default: {DEFAULT_DELAY_MS})'
    )

    parser.add_argument(
        '--http-timeout',
        dest='http_timeout',
        type=float,
        default=DEFAULT_HTTP_TIMEOUT,
        help=f'Timeout in seconds for each replay request (default: {DEFAULT_HTTP_TIMEOUT:g})'
    )

    parser.add_argument(
        '--storage-timeout',
        dest='storage_timeout',
        type=float,
        default=60.0,
        help='Timeout in seconds for each object store call (default: 60)'
    )

    parser.add_argument(
        '--on-download-error',
        dest='on_download_error',
        default=ON_ERROR_ABORT,
        choices=ON_ERROR_POLICIES,
        help='Abort the run or skip the object when a download fails (default: abort)'
    )

    parser.add_argument(
        '--body-encoding',
        dest='body_encoding',
        default=BODY_JSON_STRING,
        choices=BODY_ENCODINGS,
        help='Send staged text wrapped as a JSON string or unchanged (default: json-string)'
    )

    parser.add_argument(
        '--output',
        default='table',
        choices=OUTPUT_FORMATS,
        help='Report format (default: table)'
    )

    parser.add_argument(
        '--config',
        default=None,
        help='YAML config with storage settings (default: $REPLAYER_CONFIG)'
    )

    parser.add_argument(
        '--metrics-file',
        dest='metrics_file',
        help='Write Prometheus metrics to this file after the run'
    )

    parser.add_argument(
        '--log-level',
        dest='log_level',
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Log level (default: INFO)'
    )

    parser.add_argument(
        '--log-json',
        dest='log_json',
        action='store_true',
        help='Emit logs as JSON records'
    )

    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.api_key:
        parser.error('--api-key is required (or set REPLAYER_API_KEY)')
    if args.delay_ms < 0:
        parser.error('--delay-ms must be >= 0')
    if args.http_timeout <= 0 or args.storage_timeout <= 0:
        parser.error('timeouts must be > 0')

    return args


def run(args: argparse.Namespace) -> int:
    """Resolve configuration, run the pipeline and print the report."""
    engine = None
    try:
        storage_config = pick_storage_config(args.config)
        connection = get_storage_connection(storage_config.storage_name, args.config)

        fetcher = BlobFetcher(
            create_s3_client(connection, timeout=args.storage_timeout),
            bucket=storage_config.bonus_redeemed_container,
            tmp_dir=args.tmp_dir
        )
        engine = ReplayEngine(
            api_url=args.api_url,
            api_key=args.api_key,
            delay_ms=args.delay_ms,
            timeout=args.http_timeout,
            body_encoding=args.body_encoding
        )

        report = RedeemBonusesPipeline(
            fetcher,
            engine,
            container_folder=args.container_folder,
            on_download_error=args.on_download_error
        ).run()

    except ReplayerError as e:
        logger.opt(exception=e).debug("Redeem bonuses replay aborted")
        logger.error(f"Redeem bonuses replay failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1

    finally:
        if engine is not None:
            engine.close()

    print(report.render(args.output))

    if args.metrics_file:
        try:
            write_to_textfile(args.metrics_file, REGISTRY)
        except OSError as e:
            logger.warning(f"Could not write metrics to {args.metrics_file}: {e}")

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(args.log_level, args.log_json)
    return run(args)


if __name__ == '__main__':
    sys.exit(main())

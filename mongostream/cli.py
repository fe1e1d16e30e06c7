"""
mongostream command line
Stream MongoDB collections to another MongoDB deployment
"""
import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from . import __version__
from .config.manager import ConfigManager, TransferOptions
from .core.database import StoreConnection
from .errors import ConfigError, ConnectError
from .transfer.fleet import FleetOrchestrator, FleetReport

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='mongostream',
        description='Stream MongoDB to MongoDB'
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--source_uri', dest='source_uri',
                        help='Source MongoDB URI (env: STREAM_SOURCE)')
    parser.add_argument('--destination_uri', dest='destination_uri',
                        help='Destination MongoDB URI (env: STREAM_DEST)')
    parser.add_argument('--db', '-d', dest='database',
                        help='MongoDB database (env: MONGODB_DB)')
    parser.add_argument('--collection', '-c', dest='collection',
                        help='MongoDB collection; all collections when omitted (env: MONGODB_COLLECTION)')
    parser.add_argument('--bulk', '-b', dest='bulk_size',
                        help='Documents per insertMany batch, default 2000 (env: STREAM_BULK)')
    parser.add_argument('--nobulk', dest='single_item_mode', action='store_true', default=None,
                        help='Insert documents one at a time (env: STREAM_NOBULK)')
    parser.add_argument('--continue', dest='continue_from_marker', action='store_true', default=None,
                        help='Resume after the newest _id already in the destination (env: STREAM_CONTINUE)')
    parser.add_argument('--validate', dest='validate', action='store_true', default=None,
                        help='Check every destination doc exists in the source after transfer (env: STREAM_VALIDATE)')
    parser.add_argument('--rename_db', dest='rename_db',
                        help='Destination database name (env: STREAM_RENAME_DB)')
    parser.add_argument('--rename_collection', dest='rename_collection',
                        help='Destination collection name, requires --collection (env: STREAM_RENAME_COLLECTION)')
    parser.add_argument('--threads', '-t', dest='collection_concurrency',
                        help='Collections transferred at once, default 4 (env: STREAM_THREADS)')
    parser.add_argument('--insert_concurrency', dest='insert_concurrency',
                        help='insertMany calls in flight per collection, default 4 or 1 with --continue '
                             '(env: STREAM_INSERT_CONCURRENCY)')
    parser.add_argument('--copy_indexes', dest='copy_indexes', action='store_true', default=None,
                        help='Create source indexes on the destination first (env: STREAM_COPY_INDEXES)')
    parser.add_argument('--progress_bar', dest='show_progress_bar', action='store_true', default=None,
                        help='Show a progress bar per collection (env: STREAM_PROGRESS_BAR)')
    parser.add_argument('--verbose', '-v', dest='verbose', action='store_true', default=None,
                        help='Debug logging and error level insert failures (env: STREAM_VERBOSE)')
    parser.add_argument('--config', dest='config_file',
                        help='JSON or YAML file with options')
    parser.add_argument('--log_file', dest='log_file',
                        help='Also write logs to this file (env: STREAM_LOG_FILE)')
    return parser


def configure_logging(level: str = "INFO", log_file: Optional[str] = None):
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True
    )
    # driver chatter drowns out progress lines at debug level
    logging.getLogger("pymongo").setLevel(logging.WARNING)


async def run(options: TransferOptions) -> FleetReport:
    """Connect both ends, resolve collections, transfer everything"""
    source = StoreConnection(options.source_uri, options.database, label="source")
    destination = StoreConnection(
        options.destination_uri,
        options.database,
        rename_db=options.rename_db,
        rename_collection=options.rename_collection,
        label="destination"
    )
    try:
        await source.connect()
        await destination.connect()

        fleet = FleetOrchestrator(source, destination, options)
        collections = await fleet.resolve_collections()
        return await fleet.run(collections)
    finally:
        await source.disconnect()
        await destination.disconnect()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    overrides = {k: v for k, v in vars(args).items() if k != "config_file"}

    try:
        options = ConfigManager().load_config(args.config_file, overrides=overrides)
    except ConfigError as e:
        configure_logging()
        logger.error(f"❌ {e}")
        return 1

    configure_logging(options.log_level, options.log_file)
    logger.info(f"Starting mongostream:{__version__}")
    logger.debug(f"Options: {ConfigManager.describe(options)}")

    try:
        report = asyncio.run(run(options))
    except (ConfigError, ConnectError) as e:
        logger.error(f"❌ {e}")
        return 1

    if report.failures:
        logger.warning(f"{len(report.failures)} collections did not complete, see errors above")
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
Script to run one catalog sync from the command line

    python scripts/run_sync.py cosmos 10000001 --max-pages 5
    python scripts/run_sync.py openfoodfacts --file products.jsonl --max-records 1000
"""

import argparse
import asyncio
import json
import signal
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

import httpx

from core.config import settings
from core.database import engine, async_session_maker
from core.exceptions import PipelineAbortedError
from core.logging import setup_logging
from ingestion.checkpoints import get_checkpoint_store
from ingestion.pipelines import build_cosmos_pipeline, build_openfoodfacts_pipeline
from ingestion.storage.asset_store import get_asset_store

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sync products into the catalog")
    subparsers = parser.add_subparsers(dest="source", required=True)

    cosmos = subparsers.add_parser("cosmos", help="Sync one Cosmos category (GPC code)")
    cosmos.add_argument("code", help="GPC category code, e.g. 10000001")
    cosmos.add_argument("--page", default=None, help="Start page or next_page cursor (overrides checkpoint)")
    cosmos.add_argument("--max-pages", type=int, default=None, help="Stop after this many pages")

    off = subparsers.add_parser("openfoodfacts", help="Import an OpenFoodFacts JSON Lines dump")
    off.add_argument("--file", default=settings.OFF_INPUT_FILE, help="Path to the .jsonl dump")
    off.add_argument("--max-lines", type=int, default=None, help="Lines to scan this run")
    off.add_argument("--max-records", type=int, default=None, help="Products to map this run")

    return parser.parse_args(argv)


def install_stop_handlers(stop_event: asyncio.Event) -> None:
    """SIGINT/SIGTERM finish the current record, flush and checkpoint"""
    loop = asyncio.get_running_loop()

    def request_stop(signame: str) -> None:
        logger.warning(f"{signame} received, stopping after the current record")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_stop, sig.name)
        except NotImplementedError:
            logger.debug(f"Signal handlers not supported, {sig.name} not installed")


async def run_sync(args: argparse.Namespace) -> int:
    """Run the selected flow, print the summary as JSON, return the exit code"""
    stop_event = asyncio.Event()
    install_stop_handlers(stop_event)

    try:
        async with async_session_maker() as session:
            checkpoints = get_checkpoint_store(session)

            if args.source == "cosmos":
                async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT) as http_client:
                    runner = build_cosmos_pipeline(
                        session,
                        args.code,
                        http_client,
                        get_asset_store(),
                        checkpoints,
                        page=args.page,
                        max_pages=args.max_pages,
                        stop_event=stop_event
                    )
                    summary = await runner.run()
            else:
                runner = build_openfoodfacts_pipeline(
                    session,
                    args.file,
                    checkpoints,
                    max_lines=args.max_lines,
                    max_records=args.max_records,
                    stop_event=stop_event
                )
                summary = await runner.run()

    except PipelineAbortedError as e:
        logger.error(f"Sync aborted: {e.message}")
        if e.summary is not None:
            print(json.dumps(e.summary.model_dump(mode="json"), indent=2))
        return 1
    finally:
        await engine.dispose()

    print(json.dumps(summary.model_dump(mode="json"), indent=2))
    return 0


if __name__ == "__main__":
    setup_logging(settings.LOG_LEVEL)
    sys.exit(asyncio.run(run_sync(parse_args())))

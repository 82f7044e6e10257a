"""Shared polling loop for the executable workers."""

from __future__ import annotations

import argparse
import asyncio
import logging
from collections.abc import Awaitable, Callable

from app.core.config import get_settings

logger = logging.getLogger(__name__)

Cycle = Callable[[], Awaitable[dict[str, int]]]


def parse_worker_args(description: str, default_poll_seconds: int) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument(
        "--loop",
        action="store_true",
        help="Keep polling instead of running a single cycle.",
    )
    parser.add_argument(
        "--poll-seconds",
        type=int,
        default=default_poll_seconds,
        help="Pause between cycles in loop mode.",
    )
    return parser.parse_args()


async def run_worker(name: str, cycle: Cycle, *, loop: bool, poll_seconds: int) -> None:
    """Run ``cycle`` once, or forever with a pause; a failed cycle is logged and retried."""
    logging.basicConfig(
        level=getattr(logging, get_settings().log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    if not loop:
        logger.info("%s stats: %s", name, await cycle())
        return

    logger.info("%s polling every %ss", name, poll_seconds)
    while True:
        try:
            logger.info("%s stats: %s", name, await cycle())
        except Exception:
            logger.exception("%s cycle failed", name)
        await asyncio.sleep(poll_seconds)

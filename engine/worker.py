#!/usr/bin/env python3
# SPDX-License-Identifier: Apache-2.0

"""
CODEMA governance engine worker.

Builds the engine context and runs the notification queue and mandate sweep
triggers until SIGINT or SIGTERM. SIGUSR1 requests an immediate queue pass.
"""

import logging
import signal
import sys

from observability.config import setup_observability
from services.context import build_engine_context
from services.scheduler import QueueScheduler
from utils.config import EngineConfig

logger = logging.getLogger(__name__)


def main() -> int:
    config = EngineConfig.from_env()
    setup_observability(config)

    context = build_engine_context(config)
    context.channel_sender.declare_exchange()

    scheduler = QueueScheduler(
        context.queue,
        context.mandates,
        queue_interval=config.queue_interval_seconds,
        sweep_interval=config.mandate_sweep_interval_seconds
    )

    def shutdown(signum, frame):
        logger.info(f"Received signal {signum}, stopping worker")
        scheduler.stop()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)
    if hasattr(signal, 'SIGUSR1'):
        signal.signal(signal.SIGUSR1, lambda signum, frame: scheduler.run_now())

    scheduler.start()
    try:
        while scheduler.is_alive():
            scheduler.join(timeout=1.0)
    finally:
        context.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())

# mockexam/workers/worker_main.py
"""
RQ worker for deferred writing evaluations.

    python -m mockexam.workers.worker_main [--burst] [--log-level DEBUG]

``--burst`` drains the queue and exits, for cron-style re-evaluation sweeps.
"""
import argparse
import logging

from rq import Queue, SimpleWorker

from mockexam.core.logging_config import setup_logging
from mockexam.workers.queue import WRITING_EVALUATION_QUEUE_NAME, get_redis_connection

logger = logging.getLogger(__name__)

QUEUE_NAMES = [WRITING_EVALUATION_QUEUE_NAME]


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run the writing evaluation worker")
    parser.add_argument("--burst", action="store_true", help="Exit once the queue is empty")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.log_level)
    redis_conn = get_redis_connection()

    queues = [Queue(name, connection=redis_conn) for name in QUEUE_NAMES]
    logger.info(f"Worker listening on {', '.join(QUEUE_NAMES)} (burst={args.burst})")

    worker = SimpleWorker(queues, connection=redis_conn)
    worker.work(burst=args.burst)


if __name__ == "__main__":
    main()

"""
Worker entry point.
Run with: python -m voicereview.worker.runner [--schedule]
"""

import sys

from redis import Redis
from rq import Worker

from voicereview.config import settings
from voicereview.observability.logging import setup_logging
from voicereview.worker.jobs import enqueue_periodic_audit


def main():
    """Start the RQ worker; with --schedule, also queue the periodic audit."""
    setup_logging(component="worker")

    if "--schedule" in sys.argv[1:]:
        enqueue_periodic_audit()

    conn = Redis.from_url(settings.REDIS_URL)
    worker = Worker(
        queues=[settings.QUEUE_NAME],
        connection=conn,
        name=f"review-audit-worker-{settings.APP_VERSION}",
    )

    print(f"Starting worker on queue '{settings.QUEUE_NAME}'...")
    worker.work(with_scheduler=True)


if __name__ == "__main__":
    main()

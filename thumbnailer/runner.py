import argparse
import signal
import sys
import threading
from typing import List, Optional

from .config import Settings, load_config
from .io_s3 import S3Storage
from .io_sqs import SQSClient
from .logging import get_logger, set_level
from .processor import MessageProcessor
from .transform import build_transform
from .constants import DEFAULT_VISIBILITY_TIMEOUT, DEFAULT_WAIT_SECONDS, RECEIVE_BACKOFF_SECONDS


# ==========================================================
# Worker Pool
# ==========================================================

class WorkerPool:
    """
    N independent polling loops, one thread each. Every loop handles one
    message at a time; parallelism only comes from running several loops.
    Loops share the (immutable) clients and settings, nothing else.
    """

    def __init__(self, queue, processor, queue_url: str, *,
                 wait_seconds: int = DEFAULT_WAIT_SECONDS,
                 visibility_timeout: int = DEFAULT_VISIBILITY_TIMEOUT,
                 backoff_seconds: float = RECEIVE_BACKOFF_SECONDS,
                 logger=None):
        self.queue = queue
        self.processor = processor
        self.queue_url = queue_url
        self.wait_seconds = wait_seconds
        self.visibility_timeout = visibility_timeout
        self.backoff_seconds = backoff_seconds
        self.logger = logger or get_logger("runner")
        self._stop = threading.Event()
        self._threads: List[threading.Thread] = []

    def start(self, concurrency: int) -> None:
        """Spawn `concurrency` loops with ids 1..concurrency and return immediately."""
        if isinstance(concurrency, bool) or not isinstance(concurrency, int) or concurrency < 1:
            raise ValueError(f"concurrency must be a positive int, got {concurrency!r}")
        if not self.queue_url:
            raise ValueError("queue_url is required")
        if self._threads:
            raise RuntimeError("WorkerPool already started")

        for worker_id in range(1, concurrency + 1):
            t = threading.Thread(
                target=self.poll_loop,
                args=(worker_id,),
                name=f"worker-{worker_id}",
                daemon=True,
            )
            self._threads.append(t)
        for t in self._threads:
            t.start()

    def poll_loop(self, worker_id: int) -> None:
        log = self.logger.bind(worker_id=worker_id)
        log.info("Worker started", {"queue_url": self.queue_url})

        while not self._stop.is_set():
            try:
                msgs = self.queue.receive_messages(
                    self.queue_url,
                    max_messages=1,
                    wait_seconds=self.wait_seconds,
                    visibility_timeout=self.visibility_timeout,
                )
                if not msgs:
                    continue

                for raw in msgs:
                    self.processor.process(raw, logger=log)

            except Exception as e:
                log.error(e, {"context": "poll"})
                self._stop.wait(self.backoff_seconds)

        log.info("Worker stopped")

    def stop(self) -> None:
        """Ask every loop to exit after its current receive/process cycle."""
        self._stop.set()

    def join(self, timeout: Optional[float] = None) -> None:
        for t in self._threads:
            t.join(timeout)

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    @property
    def is_running(self) -> bool:
        return any(t.is_alive() for t in self._threads)


# ==========================================================
# Wiring
# ==========================================================

def build_pool(settings: Settings, storage=None, queue=None, transform=None) -> WorkerPool:
    """Construct clients once and hand the same instances to every loop."""
    settings.require_worker()
    region = settings.storage.region

    storage = storage or S3Storage(region=region)
    queue = queue or SQSClient(region=region)
    transform = transform or build_transform(settings.transform)

    processor = MessageProcessor(
        storage,
        queue,
        transform,
        settings.queue.queue_url,
        source_prefix=settings.transform.source_prefix,
        dest_prefix=settings.transform.dest_prefix,
        content_type=settings.transform.content_type,
        retry_visibility_seconds=settings.queue.retry_visibility,
        bucket_allowlist=settings.storage.bucket_allowlist,
    )
    return WorkerPool(
        queue,
        processor,
        settings.queue.queue_url,
        wait_seconds=settings.queue.wait_time,
        visibility_timeout=settings.queue.visibility_timeout,
        backoff_seconds=settings.queue.receive_backoff,
    )


def main(settings: Settings, install_signals: bool = True) -> WorkerPool:
    """
    Main entry point for the worker. Blocks until SIGINT/SIGTERM, then waits
    for in-flight messages to finish.
    """
    set_level(settings.logging.level)
    logger = get_logger("runner")

    pool = build_pool(settings)
    logger.info("Starting workers", {
        "queue_url": settings.queue.queue_url,
        "concurrency": settings.worker.concurrency,
    })

    if install_signals:
        def _on_signal(signum, _frame):
            logger.info("Graceful shutdown", {"signal": signum})
            pool.stop()

        signal.signal(signal.SIGINT, _on_signal)
        signal.signal(signal.SIGTERM, _on_signal)

    pool.start(settings.worker.concurrency)
    while pool.is_running:
        pool.join(timeout=1.0)
    logger.info("All workers stopped")
    return pool


# ==========================================================
# Entrypoint
# ==========================================================

def cli(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(prog="thumbnailer-worker", description="Thumbnail queue worker")
    ap.add_argument("--concurrency", type=int, help="number of polling loops (overrides WORKER_CONCURRENCY)")
    ap.add_argument("--config", help="YAML config file (overrides WORKER_CONFIG)")
    ap.add_argument("--log-level", help="DEBUG | INFO | WARNING | ERROR")
    args = ap.parse_args(argv)

    try:
        settings = load_config(config_file=args.config)
        if args.concurrency is not None:
            if args.concurrency < 1:
                raise ValueError(f"concurrency must be >= 1, got {args.concurrency}")
            settings.worker.concurrency = args.concurrency
        if args.log_level:
            set_level(args.log_level)
            settings.logging.level = args.log_level.upper()
        settings.require_worker()
    except (ValueError, FileNotFoundError) as e:
        get_logger("runner").error(f"Invalid configuration: {e}")
        return 2

    main(settings)
    return 0


if __name__ == "__main__":
    sys.exit(cli())

"""Demo service — emits synthetic log traffic through a rotating, compressing file writer."""

import argparse
import logging
import random
import signal
import time
import uuid

from rotlog.config import load_config, load_config_file
from rotlog.logsetup import configure_logging

logger = logging.getLogger("demo")

_running = True


def _signal_handler(sig, _frame):
    global _running
    logger.info("Shutdown signal received (signal %d), stopping...", sig)
    _running = False


LEVELS = [logging.INFO] * 4 + [logging.DEBUG, logging.WARNING, logging.ERROR]
SERVICES = ["ingest", "billing", "scheduler"]
MESSAGES = {
    logging.INFO: ["batch accepted", "job finished", "heartbeat"],
    logging.DEBUG: ["polling queue"],
    logging.WARNING: ["queue depth high", "retrying job"],
    logging.ERROR: ["job failed", "queue unreachable"],
}


def emit_entry(log: logging.Logger):
    level = random.choice(LEVELS)
    service = random.choice(SERVICES)
    req_id = uuid.uuid4().hex[:8]
    log.log(level, "[%s] [%s] %s", service, req_id, random.choice(MESSAGES[level]))


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Generate demo logs with rotation and compression")
    parser.add_argument("--config", metavar="PATH", default=None,
                        help="YAML config file (environment variables are used if omitted)")
    parser.add_argument("--count", type=int, default=0,
                        help="Stop after this many entries (0 = run until signalled)")
    parser.add_argument("--interval", type=float, default=0.05,
                        help="Seconds to sleep between entries")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    config = load_config_file(args.config) if args.config else load_config()
    setup = configure_logging(config)
    fw = config.file_writer
    logger.info(
        "Config: mode=%s, level=%s, log_dir=%s, file=%s, max_size=%d bytes, max_age=%s, compress=%s",
        config.mode, config.level, fw.log_dir, fw.log_filename,
        fw.max_file_size_bytes, fw.max_age, fw.compression_enabled,
    )

    entries_written = 0
    try:
        while _running and (args.count == 0 or entries_written < args.count):
            emit_entry(logger)
            entries_written += 1
            time.sleep(args.interval)
    except KeyboardInterrupt:
        pass

    logger.info("Shutting down. Total entries emitted: %d", entries_written)
    setup.close()


if __name__ == "__main__":
    main()

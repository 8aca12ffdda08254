# seriesbot.py
from core import Config, bucket_datetime
from data import KrakenClient, KrakenWS, PrintFeed
from timeseries import IntervalTimeSeries, SeriesStore

import json
import logging
import os
import requests
import signal
import sys
import threading
import time
from typing import Any, Dict


# ---- INPUTS ----
PAIR              = os.environ.get("SERIESBOT_PAIR", "XRPUSD")
TIMEZONE_OFFSET   = int(os.environ.get("SERIESBOT_TZ_OFFSET", "-6"))
INTERVALS         = {"1m": 1, "5m": 5, "15m": 15}
RING_SIZE         = int(os.environ.get("SERIESBOT_RING_SIZE", "256"))
BACKFILL_MINUTES  = int(os.environ.get("SERIESBOT_BACKFILL_MINUTES", "60"))   # 0 = live only
LOG_LEVEL         = os.environ.get("SERIESBOT_LOG_LEVEL", "INFO")

log = logging.getLogger("seriesbot")


class JsonFormatter(logging.Formatter):
    _SKIP = {"args", "msg", "levelname", "levelno", "pathname", "filename", "module",
             "exc_info", "exc_text", "stack_info", "lineno", "funcName", "created",
             "msecs", "relativeCreated", "thread", "threadName", "processName", "process",
             "name", "taskName"}

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S%z"),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        # extra= fields ride along
        for key, value in record.__dict__.items():
            if key not in self._SKIP:
                payload[key] = value
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(level.upper())
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.handlers.clear()
    root.addHandler(handler)

    # websocket-client and urllib3 are chatty at DEBUG
    for name in ("websocket", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)


def log_bucket(tf: str, series: IntervalTimeSeries) -> None:
    # the newest bucket is the one the print just opened; older ones are closed
    d, t = series.latest()
    log.info(
        "%s bucket %s opened",
        tf, bucket_datetime(d, t).strftime("%Y-%m-%d %H:%M"),
        extra={"timeframe": tf, "rows_changed": series.rows_changed, "held": len(series)},
    )


def run_backfill(feed: PrintFeed, client: KrakenClient, since: int) -> int:
    """Backfill, rebuilding the HTTP session and retrying once on a network error.

    Returns trades fed; 0 when backfill gave up (live feed still starts).
    """
    try:
        return feed.backfill(client, since)
    except requests.RequestException as e:
        log.warning("backfill network error, resetting session: %s", e)
        client.reset_session()
    except RuntimeError as e:
        log.warning("backfill failed, continuing live only: %s", e)
        return 0
    try:
        return feed.backfill(client, since)
    except (requests.RequestException, RuntimeError) as e:
        log.warning("backfill failed after retry, continuing live only: %s", e)
        return 0


def main():
    setup_logging(LOG_LEVEL)

    # ---------------- config + store ----------------
    cfg = Config(pair=PAIR, intervals=dict(INTERVALS), buffer=RING_SIZE, tz_offset=TIMEZONE_OFFSET)
    store = SeriesStore(cfg)
    feed = PrintFeed(cfg, store, on_bucket=log_bucket)
    log.info("series %s for %s, ring=%d", ",".join(cfg.intervals), cfg.pair, cfg.buffer)

    # ---------------- BACKFILL: replay recent trades ----------------
    if BACKFILL_MINUTES > 0:
        client = KrakenClient(min_interval=2.5)
        since = int(time.time()) - BACKFILL_MINUTES * 60
        try:
            run_backfill(feed, client, since)
        finally:
            client.session.close()

    # ---------------- WEBSOCKET LIVE TRADES ----------------
    ws = KrakenWS(cfg.pair, on_trade=feed.on_trade)
    ws.start()

    # ---------------- STOP ----------------
    STOP_EVENT = threading.Event()
    signal.signal(signal.SIGINT, lambda *a: STOP_EVENT.set())
    signal.signal(signal.SIGTERM, lambda *a: STOP_EVENT.set())

    while not STOP_EVENT.wait(60):
        for tf, s in store.series.items():
            log.debug("%s holds %d buckets", tf, len(s))

    ws.stop()
    log.info("stopped after %d prints", feed.prints)


if __name__ == "__main__":
    main()

# data.py
import json
import logging
import threading
import time
import requests

from websocket import WebSocketApp

from dataclasses import dataclass
from decimal import Decimal
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from core import Config, to_print_time
from timeseries import IntervalTimeSeries, SeriesStore

from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

log = logging.getLogger(__name__)

TRADES_URL = "https://api.kraken.com/0/public/Trades"

# print layout handed to IntervalTimeSeries.ingest
PRINT_FIELDS = ("date", "minute", "second", "price", "volume")


@dataclass
class Trade:
    price: Decimal
    volume: Decimal
    time: datetime       # aware, UTC


def trade_to_print(trade: Trade, tz_offset: int) -> List[float]:
    d, t, s = to_print_time(trade.time, tz_offset)
    fields = {"date": d, "minute": t, "second": s,
              "price": float(trade.price), "volume": float(trade.volume)}
    return [fields[name] for name in PRINT_FIELDS]


def _parse_trade(row) -> Trade:
    # REST and WS rows both start with [price, volume, time, ...]
    return Trade(
        price=Decimal(row[0]),
        volume=Decimal(row[1]),
        time=datetime.fromtimestamp(float(row[2]), tz=timezone.utc),
    )

# ---- Low-level Kraken REST client ----
class KrakenClient:
    def __init__(self, min_interval: float = 2.5, timeout: int = 10):
        self._last_call = 0.0
        self.min_interval = min_interval
        self.timeout = timeout
        self._build_session()

    def _build_session(self):
        self.session = requests.Session()
        retries = Retry(
            total=5,
            connect=3, read=3, status=3,
            backoff_factor=0.5,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=frozenset(["GET"]),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retries)
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

    def reset_session(self):
        self.session.close()
        self._build_session()

    def _rate_limit(self):
        now = time.time()
        wait = self._last_call + self.min_interval - now
        if wait > 0:
            time.sleep(wait)
        self._last_call = time.time()

    def _get(self, url: str, params: dict) -> dict:
        self._rate_limit()
        # tuple timeout: (connect, read)
        r = self.session.get(url, params=params, timeout=(5, self.timeout))
        r.raise_for_status()
        payload = r.json()
        if payload.get("error"):
            raise RuntimeError(", ".join(payload["error"]))
        return payload["result"]

    def get_trades(self, pair: str, since: Optional[int] = None) -> Tuple[List[Trade], Optional[str]]:
        """Public trades after `since` (unix seconds or a previous cursor), oldest first."""
        params = {"pair": pair}
        if since is not None:
            params["since"] = since
        res = self._get(TRADES_URL, params)
        cursor = res.get("last")
        pair_key = next((k for k in res if k != "last"), None)
        if pair_key is None:
            return [], cursor
        return [_parse_trade(row) for row in res[pair_key]], cursor

# ---- Live trades over websocket ----
class KrakenWS:
    """
    Minimal Kraken public WebSocket client:
      - subscribe to 'trade' (every executed trade)
    Calls on_trade(Trade) for each one; status text goes to on_status or the log.
    """

    WS_URL = "wss://ws.kraken.com/"

    def __init__(self, pair: str, on_trade=None, on_status=None):
        # Normalize pair to WS style (e.g., "XRPUSD" -> "XRP/USD")
        self.ws_pair = pair if "/" in pair else f"{pair[:-3]}/{pair[-3:]}"
        self.on_trade = on_trade      # fn(trade: Trade)
        self.on_status = on_status    # fn(text: str)
        self._ws = None
        self._thread = None
        self._lock = threading.Lock()
        self._running = False

    # ---- Public API ----
    def start(self):
        with self._lock:
            if self._running:
                return
            self._running = True
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def stop(self):
        with self._lock:
            self._running = False
        if self._ws:
            self._ws.close()

    def _status(self, text: str):
        if self.on_status:
            self.on_status(text)
        else:
            log.info(text)

    # ---- Internals ----
    def handle_message(self, msg: str) -> None:
        try:
            data = json.loads(msg)
        except ValueError:
            log.warning("ws: dropping non-json message %r", msg[:80])
            return

        # system/heartbeat events come as dicts
        if isinstance(data, dict):
            ev = data.get("event")
            if ev == "heartbeat":
                return
            if ev == "subscriptionStatus":
                chan = (data.get("subscription") or {}).get("name")
                self._status(f"ws {chan} {data.get('status')} {data.get('pair')}")
            elif ev:
                self._status(f"ws {ev}")
            return

        # channel messages: [channelID, payload, channelName, pair]
        if isinstance(data, list) and len(data) >= 4 and data[2] == "trade":
            for row in data[1]:
                if self.on_trade:
                    self.on_trade(_parse_trade(row))

    def _run(self):
        def _on_open(ws):
            self._status("ws open")
            sub_trade = {"event": "subscribe", "pair": [self.ws_pair], "subscription": {"name": "trade"}}
            ws.send(json.dumps(sub_trade))

        def _on_message(ws, msg):
            try:
                self.handle_message(msg)
            except Exception:
                log.exception("ws: trade handler failed")

        def _on_error(ws, err):
            self._status(f"ws error: {err}")

        def _on_close(ws, code, reason):
            self._status(f"ws closed: {code} {reason}")

        # loop with simple reconnect
        while True:
            with self._lock:
                if not self._running:
                    break
            try:
                self._ws = WebSocketApp(
                    self.WS_URL,
                    on_open=_on_open,
                    on_message=_on_message,
                    on_error=_on_error,
                    on_close=_on_close,
                )
                # keepalive pings help avoid idle disconnects
                self._ws.run_forever(ping_interval=15, ping_timeout=10)
            except Exception as e:
                self._status(f"ws run error: {e}")
            # small backoff before reconnect
            time.sleep(2)

# ---- High-level feed: trades -> prints -> store ----
class PrintFeed:
    """Single entry point for prints; serializes REST backfill and WS trades."""
    def __init__(self, cfg: Config, store: SeriesStore,
                 on_bucket: Optional[Callable[[str, IntervalTimeSeries], None]] = None):
        self.cfg = cfg
        self.store = store
        self.on_bucket = on_bucket   # fn(tf, series) after buckets close
        self.prints = 0
        self._lock = threading.Lock()

    def on_trade(self, trade: Trade) -> None:
        sample = trade_to_print(trade, self.cfg.tz_offset)
        with self._lock:
            self.prints += 1
            changed = self.store.ingest(sample)
            # callbacks read the window, so keep them under the lock
            for tf, rows in changed.items():
                if rows and self.on_bucket:
                    self.on_bucket(tf, self.store.series[tf])

    def backfill(self, client: KrakenClient, since: int, max_pages: int = 5) -> int:
        """Replay REST trades from `since` (unix seconds); returns trades fed."""
        fed = 0
        cursor = since
        for _ in range(max_pages):
            trades, nxt = client.get_trades(self.cfg.pair, since=cursor)
            for tr in trades:
                self.on_trade(tr)
            fed += len(trades)
            if not trades or nxt is None or nxt == cursor:
                break
            cursor = nxt
        log.info("backfill: %d trades for %s", fed, self.cfg.pair)
        return fed

"""Result retrieval orchestrator: cache, demo short-circuit, retries, fallbacks.

``ResultRetriever`` owns its cache and monitor, so tests and callers can build
isolated instances. Cache and monitor state are mutated only from synchronous
code between awaits, which is atomic under asyncio's cooperative scheduling;
do not share one retriever across threads or event loops.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Tuple

import aiohttp
from dotenv import load_dotenv

from .errors import ResultError, RetrievalFailure
from .html_normalize import decode_bytes_auto
from .monitor import OperationalMonitor
from .records import ResultQuery, ResultRecord, build_demo_record
from .result_cache import ResultCache
from .result_config import (
    ACCEPT_ANY,
    ALERT_THRESHOLD,
    BACKOFF_DELAYS,
    BASE_URL,
    CACHE_MAX_ENTRIES,
    CACHE_TTL_SECONDS,
    DEMO_REGISTRATION,
    DEMO_ROLL,
    FALLBACK_TIMEOUT,
    FALLBACK_URL_TEMPLATES,
    MAX_ATTEMPTS,
)
from .result_parser import parse_result_document, parse_result_json
from .strategies import StrategyConfig, StrategyPipeline

load_dotenv()

logger = logging.getLogger(__name__)

EXHAUSTED_MESSAGE = "Failed to fetch the result after all retry attempts. Please try again later."


def _env_int(name: str, default: int = 0) -> int:
    try:
        raw = os.getenv(name, "")
        return int(raw) if raw.strip() else default
    except (TypeError, ValueError):
        return default


def _env_bool(name: str, default: str = "0") -> bool:
    raw = os.getenv(name, default)
    return str(raw).strip().lower() not in {"0", "false", "no", "off", ""}


def _split_env_list(value: str) -> Tuple[str, ...]:
    return tuple(token.strip() for token in (value or "").split(",") if token.strip())


def _env_delays(name: str, default: Tuple[float, ...]) -> Tuple[float, ...]:
    values = []
    for token in _split_env_list(os.getenv(name, "")):
        try:
            values.append(max(0.0, float(token)))
        except ValueError:
            return default
    return tuple(values) or default


@dataclass(frozen=True, slots=True)
class RetrievalPolicy:
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    max_attempts: int = MAX_ATTEMPTS
    backoff_delays: Tuple[float, ...] = BACKOFF_DELAYS
    fallback_urls: Tuple[str, ...] = FALLBACK_URL_TEMPLATES
    fallback_timeout: float = FALLBACK_TIMEOUT
    cache_enabled: bool = True
    cache_ttl_seconds: float = CACHE_TTL_SECONDS
    cache_max_entries: int = CACHE_MAX_ENTRIES
    demo_enabled: bool = True
    record_cache_hits: bool = False
    alert_threshold: int = ALERT_THRESHOLD
    alert_webhook_url: Optional[str] = None


def load_policy_from_env() -> RetrievalPolicy:
    """Build a policy from ``BOARDRESULT_*`` environment variables (and .env)."""

    load_dotenv()
    base_url = os.getenv("BOARDRESULT_BASE_URL", "").strip() or BASE_URL
    return RetrievalPolicy(
        strategy=StrategyConfig(base_url=base_url),
        max_attempts=max(1, _env_int("BOARDRESULT_MAX_ATTEMPTS", MAX_ATTEMPTS)),
        backoff_delays=_env_delays("BOARDRESULT_BACKOFF", BACKOFF_DELAYS),
        fallback_urls=_split_env_list(os.getenv("BOARDRESULT_FALLBACK_URLS", "")) or FALLBACK_URL_TEMPLATES,
        cache_enabled=not _env_bool("BOARDRESULT_CACHE_DISABLE"),
        cache_ttl_seconds=max(0, _env_int("BOARDRESULT_CACHE_TTL", CACHE_TTL_SECONDS)),
        cache_max_entries=max(1, _env_int("BOARDRESULT_CACHE_MAX_ENTRIES", CACHE_MAX_ENTRIES)),
        demo_enabled=not _env_bool("BOARDRESULT_DEMO_DISABLE"),
        record_cache_hits=_env_bool("BOARDRESULT_RECORD_CACHE_HITS"),
        alert_threshold=max(1, _env_int("BOARDRESULT_ALERT_THRESHOLD", ALERT_THRESHOLD)),
        alert_webhook_url=os.getenv("BOARDRESULT_ALERT_WEBHOOK", "").strip() or None,
    )


DEFAULT_POLICY = load_policy_from_env()


def is_demo_query(query: ResultQuery) -> bool:
    return query.roll == DEMO_ROLL and query.registration == DEMO_REGISTRATION


class ResultRetriever:
    """Single entry point for result lookups."""

    def __init__(
        self,
        policy: Optional[RetrievalPolicy] = None,
        *,
        cache: Optional[ResultCache] = None,
        monitor: Optional[OperationalMonitor] = None,
        pipeline: Optional[StrategyPipeline] = None,
        session_factory: Optional[Callable[[], Any]] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.policy = policy or DEFAULT_POLICY
        self.cache = cache or ResultCache(
            ttl_seconds=self.policy.cache_ttl_seconds,
            max_entries=self.policy.cache_max_entries,
        )
        self.monitor = monitor or OperationalMonitor(
            alert_threshold=self.policy.alert_threshold,
            webhook_url=self.policy.alert_webhook_url,
        )
        self.pipeline = pipeline or StrategyPipeline(self.policy.strategy)
        self._session_factory = session_factory or self._default_session
        self._sleep = sleep
        self._clock = clock

    def _default_session(self) -> aiohttp.ClientSession:
        headers = {
            "User-Agent": self.policy.strategy.user_agent,
            "Accept-Language": self.policy.strategy.accept_language,
            "Accept-Encoding": "gzip, deflate",
        }
        return aiohttp.ClientSession(headers=headers, cookie_jar=aiohttp.CookieJar())

    async def fetch_result(self, query: ResultQuery) -> ResultRecord:
        key = query.cache_key
        if self.policy.cache_enabled:
            cached = self.cache.get(key)
            if cached is not None:
                logger.info("cache hit for %s", key)
                if self.policy.record_cache_hits:
                    self.monitor.record_request(True, 0.0)
                return cached

        if self.policy.demo_enabled and is_demo_query(query):
            logger.info("demo identity requested; returning canned record")
            record = build_demo_record(query)
            self._store(key, record)
            return record

        started = self._clock()
        try:
            record = await self._retrieve(query)
        except RetrievalFailure as exc:
            self.monitor.record_request(False, self._elapsed_ms(started), exc.message)
            raise
        self.monitor.record_request(True, self._elapsed_ms(started))
        self._store(key, record)
        return record

    def clear_cache(self) -> None:
        self.cache.clear()

    def get_cache_stats(self) -> dict:
        return self.cache.stats()

    def _store(self, key: str, record: ResultRecord) -> None:
        if self.policy.cache_enabled:
            self.cache.put(key, record)

    def _elapsed_ms(self, started: float) -> float:
        return max(0.0, (self._clock() - started) * 1000.0)

    def _backoff(self, attempt: int) -> float:
        delays = self.policy.backoff_delays or (0.0,)
        return delays[min(attempt, len(delays) - 1)]

    async def _retrieve(self, query: ResultQuery) -> ResultRecord:
        last_error: Optional[ResultError] = None
        attempts = max(1, self.policy.max_attempts)
        async with self._session_factory() as session:
            for attempt in range(attempts):
                try:
                    doc = await self.pipeline.run(session, query, attempt)
                    record = parse_result_document(doc.text, doc.content_type, query)
                    logger.info("retrieved %s via %s on attempt %d", query.cache_key, doc.strategy, attempt + 1)
                    return record
                except ResultError as exc:
                    last_error = exc
                    logger.warning("attempt %d/%d failed for %s: %s", attempt + 1, attempts, query.cache_key, exc)
                    if attempt < attempts - 1:
                        delay = self._backoff(attempt)
                        logger.debug("backing off %.1fs before attempt %d", delay, attempt + 2)
                        await self._sleep(delay)

            record = await self._try_fallback_sources(session, query)
            if record is not None:
                return record

        message = last_error.message if last_error is not None else EXHAUSTED_MESSAGE
        raise RetrievalFailure(message, last_error) from last_error

    async def _try_fallback_sources(self, session: Any, query: ResultQuery) -> Optional[ResultRecord]:
        for template in self.policy.fallback_urls:
            try:
                url = template.format(
                    board=query.board.value,
                    exam=query.exam.value,
                    roll=query.roll,
                    reg=query.registration,
                    eiin=query.eiin or "",
                )
            except (KeyError, IndexError, ValueError):
                logger.warning("skipping malformed fallback template %r", template)
                continue
            try:
                async with session.get(
                    url,
                    headers={"Accept": ACCEPT_ANY},
                    timeout=aiohttp.ClientTimeout(total=self.policy.fallback_timeout),
                ) as resp:
                    if resp.status != 200:
                        logger.debug("fallback %s answered HTTP %d", url, resp.status)
                        continue
                    body = await resp.read()
                    text = decode_bytes_auto(body, resp.headers)
                payload = json.loads(text)
                record = parse_result_json(payload, query)
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError, ResultError) as exc:
                logger.debug("fallback %s failed: %s", url, exc)
                continue
            logger.info("retrieved %s from fallback source %s", query.cache_key, url)
            return record
        return None


# ---------------- Single event loop helper for sync callers ------------------
_FETCH_LOOP: asyncio.AbstractEventLoop | None = None


def _run_in_fetch_loop(coro: "asyncio.coroutines.Coroutine"):
    global _FETCH_LOOP
    if _FETCH_LOOP is None or _FETCH_LOOP.is_closed():
        _FETCH_LOOP = asyncio.new_event_loop()
    return _FETCH_LOOP.run_until_complete(coro)


def fetch_result(query: ResultQuery, *, retriever: Optional[ResultRetriever] = None) -> ResultRecord:
    """Blocking wrapper around :meth:`ResultRetriever.fetch_result`."""

    return _run_in_fetch_loop((retriever or ResultRetriever()).fetch_result(query))


__all__ = [
    "DEFAULT_POLICY",
    "RetrievalPolicy",
    "ResultRetriever",
    "load_policy_from_env",
    "is_demo_query",
    "fetch_result",
]

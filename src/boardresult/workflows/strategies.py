from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import aiohttp

from .errors import NetworkFailure, UpstreamFailure
from .html_normalize import decode_bytes_auto, load_soup
from .records import ResultQuery
from .result_config import (
    ACCEPT_ANY,
    ACCEPT_HTML,
    ACCEPT_LANGUAGE,
    ALTERNATE_PATH,
    ALTERNATE_TIMEOUT,
    BASE_URL,
    BOARD_LABELS,
    EXAM_LABELS,
    FORM_PATH,
    FORM_TIMEOUT,
    SCRAPE_TIMEOUT,
    TOKEN_FIELD,
    TOKEN_TIMEOUT,
    USER_AGENT,
)

logger = logging.getLogger(__name__)

STRATEGY_FORM = "form_submission"
STRATEGY_ALTERNATE = "alternate_endpoint"
STRATEGY_SCRAPE = "token_scrape"
STRATEGY_ORDER: Tuple[str, ...] = (STRATEGY_FORM, STRATEGY_ALTERNATE, STRATEGY_SCRAPE)

TIMEOUT_MESSAGE = "The board site did not respond in time. Please try again shortly."
CONNECT_MESSAGE = "Could not connect to the board site. Please try again shortly."


@dataclass(frozen=True)
class StrategyConfig:
    """Endpoints, timeouts and request identity for the fetch strategies."""

    base_url: str = BASE_URL
    form_path: str = FORM_PATH
    alternate_path: str = ALTERNATE_PATH
    form_timeout: float = FORM_TIMEOUT
    alternate_timeout: float = ALTERNATE_TIMEOUT
    scrape_timeout: float = SCRAPE_TIMEOUT
    token_timeout: float = TOKEN_TIMEOUT
    user_agent: str = USER_AGENT
    accept_language: str = ACCEPT_LANGUAGE

    @property
    def form_url(self) -> str:
        return self.base_url.rstrip("/") + self.form_path

    @property
    def alternate_url(self) -> str:
        return self.base_url.rstrip("/") + self.alternate_path


@dataclass
class RawDocument:
    """Upstream response body handed to the parser."""

    url: str
    status: int
    content_type: str
    text: str
    strategy: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_json(self) -> bool:
        return "json" in (self.content_type or "").lower()


def compose_form(query: ResultQuery, token: Optional[str] = None) -> Dict[str, str]:
    """Form fields in the board site's own vocabulary."""

    form = {
        "board": BOARD_LABELS[query.board.value],
        "exam": EXAM_LABELS[query.exam.value],
        "roll": query.roll,
        "reg": query.registration,
        "eiin": query.eiin or "",
    }
    if token:
        form[TOKEN_FIELD] = token
    return form


def harvest_token(html: str) -> Optional[str]:
    """Return the anti-forgery token from a form page, if one is present."""

    if not html:
        return None
    soup = load_soup(html)
    node = soup.select_one(f'input[name="{TOKEN_FIELD}"]')
    if node is not None and (node.get("value") or "").strip():
        return node["value"].strip()
    meta = soup.select_one('meta[name="csrf-token"]')
    if meta is not None and (meta.get("content") or "").strip():
        return meta["content"].strip()
    return None


def strategy_for(attempt: int) -> str:
    """Strategy is purely a function of the attempt index."""

    return STRATEGY_ORDER[min(max(attempt, 0), len(STRATEGY_ORDER) - 1)]


class StrategyPipeline:
    """One upstream round trip per call, strategy chosen by attempt number."""

    def __init__(self, config: Optional[StrategyConfig] = None) -> None:
        self.config = config or StrategyConfig()

    def _headers(self, accept: str, referer: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "User-Agent": self.config.user_agent,
            "Accept": accept,
            "Accept-Language": self.config.accept_language,
        }
        if referer:
            headers["Referer"] = referer
        return headers

    async def run(self, session: aiohttp.ClientSession, query: ResultQuery, attempt: int) -> RawDocument:
        strategy = strategy_for(attempt)
        logger.debug("attempt %d using strategy %s for %s", attempt, strategy, query.cache_key)
        if strategy == STRATEGY_FORM:
            return await self.form_submission(session, query)
        if strategy == STRATEGY_ALTERNATE:
            return await self.alternate_endpoint(session, query)
        return await self.token_scrape(session, query)

    async def form_submission(self, session: aiohttp.ClientSession, query: ResultQuery) -> RawDocument:
        url = self.config.form_url
        token: Optional[str] = None
        try:
            page = await self._request(
                session,
                "GET",
                url,
                strategy=STRATEGY_FORM,
                timeout=self.config.form_timeout,
                headers=self._headers(ACCEPT_HTML),
            )
            token = harvest_token(page.text)
        except (NetworkFailure, UpstreamFailure) as exc:
            # Token is optional on the primary path; submit without it.
            logger.debug("form page unavailable, submitting without token: %s", exc)
        doc = await self._request(
            session,
            "POST",
            url,
            strategy=STRATEGY_FORM,
            timeout=self.config.form_timeout,
            headers=self._headers(ACCEPT_HTML, referer=url),
            data=compose_form(query, token),
        )
        doc.metadata["token_harvested"] = bool(token)
        return doc

    async def alternate_endpoint(self, session: aiohttp.ClientSession, query: ResultQuery) -> RawDocument:
        return await self._request(
            session,
            "POST",
            self.config.alternate_url,
            strategy=STRATEGY_ALTERNATE,
            timeout=self.config.alternate_timeout,
            headers=self._headers(ACCEPT_ANY, referer=self.config.form_url),
            data=compose_form(query),
        )

    async def token_scrape(self, session: aiohttp.ClientSession, query: ResultQuery) -> RawDocument:
        url = self.config.form_url
        page = await self._request(
            session,
            "GET",
            url,
            strategy=STRATEGY_SCRAPE,
            timeout=self.config.token_timeout,
            headers=self._headers(ACCEPT_HTML),
        )
        token = harvest_token(page.text)
        doc = await self._request(
            session,
            "POST",
            url,
            strategy=STRATEGY_SCRAPE,
            timeout=self.config.scrape_timeout,
            headers=self._headers(ACCEPT_HTML, referer=url),
            data=compose_form(query, token),
        )
        doc.metadata["token_harvested"] = bool(token)
        return doc

    async def _request(
        self,
        session: aiohttp.ClientSession,
        method: str,
        url: str,
        *,
        strategy: str,
        timeout: float,
        headers: Dict[str, str],
        data: Optional[Dict[str, str]] = None,
    ) -> RawDocument:
        try:
            async with session.request(
                method,
                url,
                data=data,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=timeout),
                allow_redirects=True,
            ) as resp:
                status = resp.status
                content_type = resp.headers.get("Content-Type", "text/html").split(";")[0].strip()
                body = await resp.read()
                text = decode_bytes_auto(body, resp.headers)
        except asyncio.TimeoutError as exc:
            logger.warning("%s %s timed out after %.0fs (%s)", method, url, timeout, strategy)
            raise NetworkFailure(TIMEOUT_MESSAGE) from exc
        except aiohttp.ClientError as exc:
            logger.warning("%s %s failed (%s): %s", method, url, strategy, exc)
            raise NetworkFailure(CONNECT_MESSAGE) from exc

        if status >= 400:
            raise UpstreamFailure(f"The board site responded with an error (HTTP {status}).", status=status)
        return RawDocument(
            url=url,
            status=status,
            content_type=content_type or "text/html",
            text=text,
            strategy=strategy,
        )


__all__ = [
    "STRATEGY_FORM",
    "STRATEGY_ALTERNATE",
    "STRATEGY_SCRAPE",
    "STRATEGY_ORDER",
    "StrategyConfig",
    "RawDocument",
    "StrategyPipeline",
    "compose_form",
    "harvest_token",
    "strategy_for",
]

import asyncio

import aiohttp
import pytest

from boardresult.workflows.errors import NetworkFailure, UpstreamFailure
from boardresult.workflows.records import ResultQuery
from boardresult.workflows.strategies import (
    CONNECT_MESSAGE,
    STRATEGY_ALTERNATE,
    STRATEGY_FORM,
    STRATEGY_SCRAPE,
    TIMEOUT_MESSAGE,
    StrategyConfig,
    StrategyPipeline,
    compose_form,
    harvest_token,
    strategy_for,
)


FORM_PAGE = '<html><body><form><input type="hidden" name="_token" value="tok-123"></form></body></html>'


class FakeResponse:
    def __init__(self, status=200, body=b"", content_type="text/html; charset=utf-8"):
        self.status = status
        self.headers = {"Content-Type": content_type}
        self._body = body

    async def read(self):
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


def _query(**overrides) -> ResultQuery:
    params = {"board": "dhaka", "exam": "ssc", "roll": "654321", "registration": "9876543210"}
    params.update(overrides)
    return ResultQuery(**params)


def _pipeline() -> StrategyPipeline:
    return StrategyPipeline(StrategyConfig(base_url="https://boards.example/en/"))


def test_strategy_for_is_a_function_of_attempt_index() -> None:
    assert strategy_for(0) == STRATEGY_FORM
    assert strategy_for(1) == STRATEGY_ALTERNATE
    assert strategy_for(2) == STRATEGY_SCRAPE
    assert strategy_for(5) == STRATEGY_SCRAPE


def test_compose_form_uses_upstream_vocabulary() -> None:
    form = compose_form(_query(board="Madrasah", exam="HSC", eiin="108123"), token="abc")

    assert form == {
        "board": "Madrasah",
        "exam": "HSC/Alim/Equivalent",
        "roll": "654321",
        "reg": "9876543210",
        "eiin": "108123",
        "_token": "abc",
    }
    assert "_token" not in compose_form(_query())
    assert compose_form(_query())["eiin"] == ""


def test_harvest_token_prefers_hidden_input_then_meta() -> None:
    assert harvest_token(FORM_PAGE) == "tok-123"
    assert harvest_token('<html><head><meta name="csrf-token" content="meta-9"></head></html>') == "meta-9"
    assert harvest_token("<html><body>no form</body></html>") is None
    assert harvest_token("") is None


def test_form_submission_posts_harvested_token() -> None:
    session = FakeSession([
        FakeResponse(body=FORM_PAGE.encode("utf-8")),
        FakeResponse(body=b"<html>result</html>"),
    ])

    doc = asyncio.run(_pipeline().run(session, _query(), 0))

    assert doc.strategy == STRATEGY_FORM
    assert doc.text == "<html>result</html>"
    assert doc.metadata["token_harvested"] is True
    (get_method, get_url, _), (post_method, post_url, post_kwargs) = session.calls
    assert (get_method, post_method) == ("GET", "POST")
    assert get_url == post_url == "https://boards.example/en/ebr.app/home/"
    assert post_kwargs["data"]["_token"] == "tok-123"
    assert post_kwargs["data"]["exam"] == "SSC/Dakhil/Equivalent"
    assert post_kwargs["headers"]["Referer"] == post_url
    assert post_kwargs["allow_redirects"] is True


def test_form_submission_proceeds_without_token_when_page_fails() -> None:
    session = FakeSession([
        aiohttp.ClientConnectionError("refused"),
        FakeResponse(body=b"<html>result</html>"),
    ])

    doc = asyncio.run(_pipeline().form_submission(session, _query()))

    assert doc.metadata["token_harvested"] is False
    assert "_token" not in session.calls[1][2]["data"]


def test_alternate_endpoint_is_a_single_post() -> None:
    session = FakeSession([FakeResponse(body=b'{"success": true}', content_type="application/json")])

    doc = asyncio.run(_pipeline().run(session, _query(), 1))

    assert doc.strategy == STRATEGY_ALTERNATE
    assert doc.is_json
    assert doc.content_type == "application/json"
    assert len(session.calls) == 1
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("POST", "https://boards.example/en/v2/result")
    assert "application/json" in kwargs["headers"]["Accept"]


def test_token_scrape_requires_the_form_page() -> None:
    session = FakeSession([asyncio.TimeoutError()])

    with pytest.raises(NetworkFailure) as excinfo:
        asyncio.run(_pipeline().run(session, _query(), 2))

    assert excinfo.value.message == TIMEOUT_MESSAGE
    assert isinstance(excinfo.value.__cause__, asyncio.TimeoutError)
    assert len(session.calls) == 1


def test_token_scrape_uses_its_own_timeouts() -> None:
    session = FakeSession([
        FakeResponse(body=FORM_PAGE.encode("utf-8")),
        FakeResponse(body=b"<html>result</html>"),
    ])
    pipeline = StrategyPipeline(StrategyConfig(token_timeout=3, scrape_timeout=7))

    doc = asyncio.run(pipeline.token_scrape(session, _query()))

    assert doc.strategy == STRATEGY_SCRAPE
    assert session.calls[0][2]["timeout"].total == 3
    assert session.calls[1][2]["timeout"].total == 7
    assert session.calls[1][2]["data"]["_token"] == "tok-123"


def test_client_errors_become_network_failures() -> None:
    session = FakeSession([aiohttp.ClientConnectionError("dns")])

    with pytest.raises(NetworkFailure) as excinfo:
        asyncio.run(_pipeline().alternate_endpoint(session, _query()))

    assert excinfo.value.message == CONNECT_MESSAGE


def test_http_error_status_becomes_upstream_failure() -> None:
    session = FakeSession([FakeResponse(status=503, body=b"busy")])

    with pytest.raises(UpstreamFailure) as excinfo:
        asyncio.run(_pipeline().alternate_endpoint(session, _query()))

    assert excinfo.value.status == 503
    assert "503" in excinfo.value.message


def test_body_is_decoded_with_declared_charset() -> None:
    body = "<html>পরীক্ষা</html>".encode("utf-8")
    session = FakeSession([FakeResponse(body=body, content_type="text/html; charset=UTF-8")])

    doc = asyncio.run(_pipeline().alternate_endpoint(session, _query()))

    assert doc.text == "<html>পরীক্ষা</html>"
    assert doc.content_type == "text/html"

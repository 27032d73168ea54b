"""
Network interception for Playwright pages.

A recorder listens to a page's ``response`` events and queues every response
whose request matches a method and URL pattern. ``wait()`` hands out queued
responses one at a time, in arrival order.
"""
import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Pattern, Union

from playwright.async_api import Page, Response

logger = logging.getLogger(__name__)

DEFAULT_WAIT_TIMEOUT_MS = 5000


@dataclass
class InterceptedExchange:
    """A finished request/response pair captured from the browser."""

    method: str
    url: str
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def text(self) -> str:
        return self.body.decode("utf-8")

    def json(self) -> Any:
        return json.loads(self.body)


class ResponseRecorder:
    """Queue of responses matching ``method`` and ``url_pattern`` on ``page``."""

    def __init__(self, page: Page, method: str, url_pattern: Union[str, Pattern[str]], alias: Optional[str] = None):
        self.page = page
        self.method = method.upper()
        self.url_pattern = re.compile(url_pattern) if isinstance(url_pattern, str) else url_pattern
        self.alias = alias or self.url_pattern.pattern
        self._queue: "asyncio.Queue[Response]" = asyncio.Queue()
        self._listening = False

    def matches(self, response: Response) -> bool:
        return (
            response.request.method.upper() == self.method
            and self.url_pattern.search(response.url) is not None
        )

    def _on_response(self, response: Response) -> None:
        if self.matches(response):
            logger.debug("@%s captured %s %s", self.alias, self.method, response.url)
            self._queue.put_nowait(response)

    def start(self) -> "ResponseRecorder":
        if not self._listening:
            self.page.on("response", self._on_response)
            self._listening = True
        return self

    def stop(self) -> None:
        if self._listening:
            self.page.remove_listener("response", self._on_response)
            self._listening = False

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def wait(self, timeout_ms: float = DEFAULT_WAIT_TIMEOUT_MS) -> InterceptedExchange:
        """
        Take the next captured response and read it fully.

        Raises:
            TimeoutError: If no matching response arrives within ``timeout_ms``
        """
        try:
            response = await asyncio.wait_for(self._queue.get(), timeout_ms / 1000.0)
        except asyncio.TimeoutError:
            raise TimeoutError(
                f"Timed out after {timeout_ms:.0f}ms waiting for a response to @{self.alias}"
            ) from None

        await response.finished()
        headers = await response.all_headers()
        body = await response.body()
        return InterceptedExchange(
            method=response.request.method,
            url=response.url,
            status=response.status,
            headers={key.lower(): value for key, value in headers.items()},
            body=body,
        )

    async def __aenter__(self) -> "ResponseRecorder":
        return self.start()

    async def __aexit__(self, *exc_info) -> None:
        self.stop()


def intercept(page: Page, method: str, url_pattern: Union[str, Pattern[str]], alias: Optional[str] = None) -> ResponseRecorder:
    """Start recording responses to ``method`` requests whose URL matches ``url_pattern``."""
    return ResponseRecorder(page, method, url_pattern, alias=alias).start()

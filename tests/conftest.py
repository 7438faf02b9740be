from __future__ import annotations

from dataclasses import dataclass, replace
from types import SimpleNamespace
from typing import Any, List, Optional, Sequence, Tuple, Union

import pytest


@dataclass
class FakeResponse:
    status: int = 200
    body: str = ""
    reason: str = "OK"
    url: Optional[str] = None

    async def text(self) -> str:
        return self.body


class _RequestContext:
    def __init__(self, result: Union[FakeResponse, BaseException]) -> None:
        self._result = result

    async def __aenter__(self) -> FakeResponse:
        if isinstance(self._result, BaseException):
            raise self._result
        return self._result

    async def __aexit__(self, *exc: Any) -> bool:
        return False


class FakeSession:
    """Stands in for aiohttp.ClientSession; routes are matched by URL prefix, in order."""

    def __init__(self, routes: Sequence[Tuple[str, Union[FakeResponse, BaseException]]]) -> None:
        self.routes = list(routes)
        self.calls: List[str] = []
        self.closed = False

    def get(self, url: str, **kwargs: Any) -> _RequestContext:
        self.calls.append(url)
        for prefix, result in self.routes:
            if url.startswith(prefix):
                if isinstance(result, FakeResponse):
                    result = replace(result, url=result.url or url)
                return _RequestContext(result)
        raise AssertionError(f"unexpected request: {url}")

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def http():
    return SimpleNamespace(Response=FakeResponse, session=lambda *routes: FakeSession(routes))

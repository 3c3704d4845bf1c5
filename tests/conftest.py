"""Shared fixtures: a scripted upstream service and a hand-driven clock."""

from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from config import Settings

UPSTREAM_URL = "http://upstream.test/evaluation-service"

Responder = Callable[[httpx.Request], httpx.Response]


class FakeClock:
	def __init__(self, start: float = 1000.0):
		self.now = start

	def __call__(self) -> float:
		return self.now

	def advance(self, seconds: float) -> None:
		self.now += seconds


class FakeUpstream:
	"""Routes ``(path, minutes)`` to canned responses and records every request."""

	def __init__(self) -> None:
		self.routes: Dict[Tuple[str, Optional[str]], Responder] = {}
		self.requests: List[httpx.Request] = []

	def json(self, path: str, body: Any, status: int = 200, minutes: Optional[int] = None) -> None:
		self.routes[(path, _minutes(minutes))] = lambda request: httpx.Response(status, json=body)

	def raw(self, path: str, content: bytes, status: int = 200) -> None:
		self.routes[(path, None)] = lambda request: httpx.Response(status, content=content)

	def fail(self, path: str, exc_type: type, minutes: Optional[int] = None) -> None:
		def responder(request: httpx.Request) -> httpx.Response:
			raise exc_type("simulated failure", request=request)

		self.routes[(path, _minutes(minutes))] = responder

	def calls(self, path: str) -> int:
		return sum(1 for r in self.requests if r.url.path.endswith(path))

	def handler(self, request: httpx.Request) -> httpx.Response:
		self.requests.append(request)
		path = request.url.path[len("/evaluation-service"):]
		key = (path, request.url.params.get("minutes"))
		responder = self.routes.get(key)
		if responder is None:
			return httpx.Response(404, json={"message": "not found"})
		return responder(request)

	@property
	def transport(self) -> httpx.MockTransport:
		return httpx.MockTransport(self.handler)


def _minutes(minutes: Optional[int]) -> Optional[str]:
	return None if minutes is None else str(minutes)


def samples(*prices: float) -> List[dict]:
	return [
		{"price": p, "lastUpdatedAt": f"2025-05-08T04:{i:02d}:00.000000Z"}
		for i, p in enumerate(prices)
	]


@pytest.fixture
def fake_upstream() -> FakeUpstream:
	return FakeUpstream()


@pytest.fixture
def clock() -> FakeClock:
	return FakeClock()


@pytest.fixture
def settings() -> Settings:
	return Settings(
		_env_file=None,
		ACCESS_TOKEN="test-token",
		NUMBERS_API_BASE_URL=UPSTREAM_URL,
		STOCK_API_BASE_URL=UPSTREAM_URL,
		WINDOW_SIZE=10,
		LOG_LEVEL="WARNING",
	)

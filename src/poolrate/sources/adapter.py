"""Pool source adapter interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal

import httpx

from poolrate.sources.normalize import ExtractionError, SourceError, scale_hashrate

_MISSING = object()


class SourceFetchError(SourceError):
    """Transport failure, non-success status, or empty body."""


def dig(payload: object, *path: str | int) -> object:
    """Walk ``payload`` along ``path`` of dict keys and list indexes.

    Any step that does not match the expected container raises
    ExtractionError naming the full path, so a renamed or missing field
    never surfaces as an unrelated KeyError or TypeError.
    """
    node = payload
    for depth, key in enumerate(path):
        step = _MISSING
        if isinstance(key, int):
            if isinstance(node, list) and -len(node) <= key < len(node):
                step = node[key]
        elif isinstance(node, dict):
            step = node.get(key, _MISSING)
        if step is _MISSING:
            walked = ".".join(str(k) for k in path[: depth + 1])
            raise ExtractionError(f"missing field '{walked}'")
        node = step
    return node


class PoolSource(ABC):
    """Abstract base class for pool hashrate sources.

    Each subclass knows one pool's statistics endpoint and the shape of its
    response. The poller is source-agnostic: it only calls fetch() and
    normalize().
    """

    #: Registry type name, e.g. "foundry".
    name: str
    #: Stable id of the pool in the pool registry.
    pool_unique_id: int
    default_url: str
    #: Multiplier from the extracted figure to hashes/second.
    unit_scale: Decimal = Decimal(1)
    round_result: bool = False

    def __init__(self, url: str | None = None) -> None:
        self.url = url or self.default_url

    def __repr__(self) -> str:
        return f"{type(self).__name__}(pool_unique_id={self.pool_unique_id}, url={self.url!r})"

    @abstractmethod
    def extract(self, payload: object) -> Decimal:
        """Pull the raw hashrate figure out of a decoded response body."""

    def normalize(self, payload: object) -> float:
        """Extract the raw figure and scale it to hashes/second."""
        raw = self.extract(payload)
        return scale_hashrate(raw, self.unit_scale, self.round_result)

    def fetch(self, timeout: float = 30.0, user_agent: str | None = None) -> object:
        """Perform one GET against the endpoint and return the decoded JSON body.

        Raises SourceFetchError on transport errors, non-2xx status, or an
        empty body, and ExtractionError when the body is not JSON.
        """
        headers = {"Accept": "application/json"}
        if user_agent:
            headers["User-Agent"] = user_agent
        try:
            resp = httpx.get(self.url, timeout=timeout, headers=headers, follow_redirects=True)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise SourceFetchError(f"request to {self.url} failed: {exc}") from exc

        if not resp.content or not resp.content.strip():
            raise SourceFetchError(f"empty response body from {self.url}")
        try:
            payload = resp.json()
        except ValueError as exc:
            raise ExtractionError(f"response from {self.url} is not JSON") from exc
        if payload is None:
            raise SourceFetchError(f"null response body from {self.url}")
        return payload

"""
HTTP access to the execution engine.

``HttpClient`` is the capability the job client depends on;
``EngineHttpClient`` implements it on top of a pooled ``requests.Session``
that is shared by concurrent artifact downloads.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Protocol, runtime_checkable

import requests
from requests.adapters import HTTPAdapter

logger = logging.getLogger(__name__)


@runtime_checkable
class HttpClient(Protocol):
    """GET/POST access to the engine, relative to its base URL.

    Implementations raise on transport failures and non-2xx replies.
    """

    def get_json(self, path: str, params: Optional[Mapping[str, str]] = None) -> Any: ...

    def post_json(self, path: str, body: Any) -> Any: ...

    def get_bytes(self, path: str, params: Optional[Mapping[str, str]] = None) -> bytes: ...


class EngineHttpClient:
    """``requests`` implementation of :class:`HttpClient`."""

    def __init__(
        self,
        api_url: str,
        api_key: Optional[str] = None,
        *,
        timeout: float = 30,
        pool_size: int = 4,
        session: Optional[requests.Session] = None,
    ):
        if not api_url:
            raise ValueError("api_url is required")
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

        adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

        self.session.headers.update({"Content-Type": "application/json"})
        if api_key:
            logger.info("Using API key authentication")
            self.session.headers["Authorization"] = f"Bearer {api_key}"

    def url(self, path: str) -> str:
        return f"{self.api_url}/{path.lstrip('/')}"

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        response = self.session.request(method, self.url(path), timeout=self.timeout, **kwargs)
        response.raise_for_status()
        return response

    def get_json(self, path: str, params: Optional[Mapping[str, str]] = None) -> Any:
        return self._request("GET", path, params=params).json()

    def post_json(self, path: str, body: Any) -> Any:
        return self._request("POST", path, json=body).json()

    def get_bytes(self, path: str, params: Optional[Mapping[str, str]] = None) -> bytes:
        return self._request("GET", path, params=params).content

    def close(self) -> None:
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

"""Thin requests wrapper shared by the HTTP-backed providers."""

from __future__ import annotations

import logging
import re
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

import requests
from requests import Response, Session
from requests.exceptions import JSONDecodeError, RequestException

from .base import USER_AGENT, ProviderError

logger = logging.getLogger(__name__)

_KEY_IN_PATH = re.compile(r"(/v6/)[^/]+/")


class HTTPClient:
    """Performs one GET per call; retries are layered on by the caller."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        session: Optional[Session] = None,
    ) -> None:
        self._base_url = base_url
        self._timeout = timeout
        self._session = session or requests.Session()

    def get(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        url = self._build_url(path)
        try:
            response = self._session.get(
                url,
                params=params,
                timeout=self._timeout,
                headers={"User-Agent": USER_AGENT},
            )
        except RequestException as exc:
            raise ProviderError(f"Request to {self._redact(url)} failed: {exc}") from exc
        return self._handle_response(response)

    def _build_url(self, path: str) -> str:
        base = self._base_url.rstrip("/")
        suffix = path.lstrip("/")
        return f"{base}/{suffix}"

    @staticmethod
    def _redact(url: str) -> str:
        # ExchangeRate-API carries the API key in the path.
        return _KEY_IN_PATH.sub(r"\1***/", url)

    @staticmethod
    def _handle_response(response: Response) -> Dict[str, Any]:
        status = response.status_code
        if status >= 500:
            raise ProviderError(f"Server error {status}", status_code=status)
        if status >= 400:
            raise ProviderError(f"Client error {status}: {response.text}", status_code=status)

        try:
            # Decimal parsing keeps the provider's digits exactly as serialized.
            payload = response.json(parse_float=Decimal)
        except (JSONDecodeError, ValueError) as exc:
            raise ProviderError("Invalid JSON response") from exc

        if not isinstance(payload, dict):
            raise ProviderError("Unexpected response payload shape")
        return payload

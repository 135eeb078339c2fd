"""
HTTP client for the log-cache read API.

LogCacheClient is the production fetch primitive: it maps one
fetch(source_id, start, end, query_filter) call onto one
GET /api/v1/read/<source-id> request.

Transport settings (address, TLS verification, timeout, token) are passed
to the constructor; nothing is read from or written to global state.
"""

from __future__ import annotations

import logging
import re
from typing import Any
from urllib.parse import quote

import requests

from logcache.envelope import Envelope, QueryFilter
from logcache.errors import TransientFetchError

logger = logging.getLogger("logcache-cli")

DEFAULT_TIMEOUT = 10.0
READ_PATH = "/api/v1/read/"


class LogCacheClient:
    """Reads envelopes from a log-cache service.

    Example:
        client = LogCacheClient("https://log-cache.example.com", token="bearer ...")
        batch = client.fetch("my-app", start, end, QueryFilter(line_limit=100))
    """

    def __init__(
        self,
        address: str,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        token: str | None = None,
        verify: bool = True,
    ):
        """Initialize the client.

        Args:
            address: Base URL of the log-cache service
            session: Session to reuse (created if None)
            timeout: Per-request timeout in seconds
            token: Value for the Authorization header, passed through as-is
            verify: Verify TLS certificates
        """
        self.address = address.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.token = token
        self.verify = verify

    def build_params(self, start: int, end: int, query_filter: QueryFilter) -> dict[str, Any]:
        """Build the query parameters for a read request."""
        params: dict[str, Any] = {
            "start_time": start,
            "end_time": end,
            "limit": query_filter.line_limit,
        }
        envelope_type = query_filter.effective_type
        if envelope_type:
            params["envelope_types"] = envelope_type.upper()
        if query_filter.name:
            params["name_filter"] = f"^{re.escape(query_filter.name)}$"
        return params

    def fetch(
        self,
        source_id: str,
        start: int,
        end: int,
        query_filter: QueryFilter,
    ) -> list[Envelope]:
        """Read envelopes for a source in [start, end).

        Returns:
            Envelopes ordered by timestamp, at most query_filter.line_limit

        Raises:
            TransientFetchError: On network errors, error responses or
                malformed bodies
        """
        url = self.address + READ_PATH + quote(source_id, safe="")
        headers = {"Authorization": self.token} if self.token else {}

        try:
            response = self.session.get(
                url,
                params=self.build_params(start, end, query_filter),
                headers=headers,
                timeout=self.timeout,
                verify=self.verify,
            )
        except requests.RequestException as e:
            raise TransientFetchError(f"Request to {url} failed: {e}", source_id, start, end) from e

        if response.status_code >= 400:
            raise TransientFetchError(
                f"log-cache returned {response.status_code}: {response.text.strip()[:200]}",
                source_id,
                start,
                end,
            )

        try:
            batch = response.json().get("envelopes", {}).get("batch", []) or []
            envelopes = [Envelope.from_dict(item) for item in batch]
        except (ValueError, AttributeError, TypeError) as e:
            raise TransientFetchError(
                f"Malformed response from log-cache: {e}", source_id, start, end
            ) from e

        logger.debug(f"Read {len(envelopes)} envelope(s) from {source_id}")
        envelopes.sort(key=lambda env: env.timestamp)
        return envelopes[: query_filter.line_limit]

"""Shared JSON-over-HTTP plumbing for the external collaborators."""

import logging
from typing import Any, Dict, Optional

import requests

from perishable_alloc.constants import DEFAULT_SERVICE_TIMEOUT_S
from perishable_alloc.errors import ExternalServiceError
from perishable_alloc.services.settings import resolve_base_url

logger = logging.getLogger(__name__)


class JsonServiceClient:
    """POSTs JSON documents to one base URL and returns the decoded body."""

    def __init__(self, base_url: str, timeout_s: float = DEFAULT_SERVICE_TIMEOUT_S,
                 session: Optional[requests.Session] = None):
        self.base_url = resolve_base_url(base_url)
        self.timeout_s = timeout_s
        self._session = session or requests.Session()

    def post_json(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST ``payload`` to ``path`` under the base URL.

        Raises:
            ExternalServiceError: On transport failure, non-2xx status or a
                body that is not a JSON object
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            resp = self._session.post(url, json=payload, timeout=self.timeout_s)
            resp.raise_for_status()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise ExternalServiceError(f"POST {url} failed", status=status) from e
        except requests.RequestException as e:
            raise ExternalServiceError(f"POST {url} failed: {e}") from e

        try:
            body = resp.json()
        except ValueError as e:
            raise ExternalServiceError(f"POST {url} returned a non-JSON body") from e
        if not isinstance(body, dict):
            raise ExternalServiceError(f"POST {url} returned {type(body).__name__}, expected an object")

        logger.debug(f"POST {url} -> {resp.status_code}")
        return body

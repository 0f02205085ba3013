"""Outbound HTTP delivery."""
import logging
from typing import Dict, Optional
from urllib.parse import urljoin

import requests

from hookrelay.core.config import settings
from hookrelay.schemas.delivery_schemas import HttpResponse
from hookrelay.services.egress_guard import EgressGuard, egress_guard

logger = logging.getLogger(__name__)

BODY_METHODS = {"POST", "PUT", "PATCH"}
REDIRECT_CODES = {301, 302, 303, 307, 308}


class HttpExecutor:
    """
    Sends a single request and normalizes the outcome.

    Never raises for transport failures: blocked URLs and any
    ``requests`` error come back as ``code=0`` with ``error`` set.
    Classification of the status code is left to the caller.
    """

    def __init__(
        self,
        guard: Optional[EgressGuard] = None,
        timeout: Optional[int] = None,
        max_redirects: Optional[int] = None,
        verify_ssl: Optional[bool] = None
    ):
        self.guard = guard or egress_guard
        self.timeout = timeout if timeout is not None else settings.default_timeout
        self.max_redirects = max_redirects if max_redirects is not None else settings.max_redirects
        self.verify_ssl = verify_ssl if verify_ssl is not None else settings.verify_ssl

    def send(
        self,
        url: str,
        method: str,
        headers: Dict[str, str],
        body: Optional[str] = None
    ) -> HttpResponse:
        """
        Perform the request, following redirects.

        Every redirect target goes through the egress guard again before it
        is requested.

        Args:
            url: Target URL, checked against the egress guard first
            method: HTTP method
            headers: Request headers
            body: Encoded body; only sent for POST, PUT and PATCH

        Returns:
            HttpResponse with code, headers, body and error
        """
        if not self.guard.is_external(url):
            return HttpResponse(code=0, error="URL blocked: internal or private network address")

        method = method.upper()
        data = body.encode("utf-8") if body is not None and method in BODY_METHODS else None

        try:
            with requests.Session() as session:
                redirects = 0
                while True:
                    response = session.request(
                        method,
                        url,
                        headers=headers,
                        data=data,
                        timeout=self.timeout,
                        verify=self.verify_ssl,
                        allow_redirects=False
                    )
                    location = response.headers.get("Location")
                    if response.status_code not in REDIRECT_CODES or not location:
                        break

                    redirects += 1
                    if redirects > self.max_redirects:
                        logger.warning(f"{method} {url} exceeded {self.max_redirects} redirects")
                        return HttpResponse(code=0, error=f"Exceeded {self.max_redirects} redirects")

                    url = urljoin(url, location)
                    if not self.guard.is_external(url):
                        return HttpResponse(
                            code=0, error="Redirect blocked: internal or private network address"
                        )

                    # 307 and 308 keep method and body; the rest become a bodiless GET
                    if response.status_code not in (307, 308):
                        method, data = "GET", None
        except requests.exceptions.Timeout:
            logger.warning(f"{method} {url} timed out after {self.timeout}s")
            return HttpResponse(code=0, error=f"Request timed out after {self.timeout} seconds")
        except requests.exceptions.ConnectionError as e:
            logger.warning(f"{method} {url} connection error: {e}")
            return HttpResponse(code=0, error=f"Connection error: {e}")
        except requests.exceptions.RequestException as e:
            logger.warning(f"{method} {url} failed: {e}")
            return HttpResponse(code=0, error=str(e))

        return HttpResponse(
            code=response.status_code,
            headers=dict(response.headers),
            body=response.text
        )

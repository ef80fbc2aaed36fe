"""
IP Geolocation Client
=====================

Resolves a submitter's IP address to a country name through an external
HTTP provider (ipgeolocation.io compatible: GET {endpoint}?apiKey=&ip=&fields=).

The lookup never raises. Anything short of a usable answer becomes "Unknown":

- provider answered with a null or missing country -> "Unknown", not retried;
  any other value is returned as given
- provider answered with an error status   -> "Unknown", not retried
- provider unreachable (connect/timeout)   -> retried with a fixed backoff,
                                              "Unknown" once retries run out
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from complaints.core.config import Settings
from complaints.models.complaint import UNKNOWN_COUNTRY

logger = logging.getLogger(__name__)


class GeoLocationClient:
    """Async country lookup with bounded retry on transport failures."""

    FIELD_COUNTRY_NAME = "country_name"
    PARAM_API_KEY = "apiKey"
    PARAM_IP = "ip"
    PARAM_FIELDS = "fields"

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.url = settings.geolocation_base_url.rstrip("/") + "/" + settings.geolocation_endpoint.lstrip("/")
        self.api_key = settings.geolocation_api_key
        self.max_attempts = settings.geolocation_retry_max_attempts
        self.backoff_seconds = settings.geolocation_backoff_seconds
        self.timeout = settings.geolocation_timeout_seconds
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    def _build_params(self, ip_address: str) -> Dict[str, str]:
        params = {
            self.PARAM_IP: ip_address,
            self.PARAM_FIELDS: self.FIELD_COUNTRY_NAME,
        }
        if self.api_key:
            params[self.PARAM_API_KEY] = self.api_key
        return params

    async def _fetch_country_response(self, ip_address: str) -> Any:
        client = await self._get_client()
        response = await client.get(
            self.url,
            params=self._build_params(ip_address),
            headers={"Accept": "application/json"},
        )
        response.raise_for_status()
        return response.json()

    def _extract_country(self, ip_address: str, payload: Any) -> str:
        if not isinstance(payload, dict):
            logger.error("Unexpected geolocation payload for IP %s: %r", ip_address, payload)
            return UNKNOWN_COUNTRY
        country = payload.get(self.FIELD_COUNTRY_NAME)
        if country is not None:
            logger.debug("Country found for IP %s: %s", ip_address, country)
            return str(country)
        logger.warning("Country not found for IP: %s", ip_address)
        return UNKNOWN_COUNTRY

    async def get_country_from_ip(self, ip_address: str) -> str:
        """
        Resolve `ip_address` to a country name.

        Transport failures are retried up to `max_attempts` times after the
        first request, waiting `backoff_seconds` between requests.

        Returns:
            The provider's country name, or "Unknown".
        """
        logger.debug("Getting country for IP: %s", ip_address)
        retries = 0
        while True:
            try:
                payload = await self._fetch_country_response(ip_address)
            except httpx.TransportError as e:
                if retries >= self.max_attempts:
                    logger.error(
                        "Geolocation provider unreachable for IP %s after %d attempt(s): %s",
                        ip_address, retries + 1, e,
                    )
                    return UNKNOWN_COUNTRY
                retries += 1
                logger.warning(
                    "Geolocation request for IP %s failed (%s), retry %d/%d in %.2fs",
                    ip_address, e, retries, self.max_attempts, self.backoff_seconds,
                )
                await asyncio.sleep(self.backoff_seconds)
                continue
            except httpx.HTTPStatusError as e:
                logger.error(
                    "Error getting country for IP %s: %s - %s",
                    ip_address, e.response.status_code, e.response.reason_phrase,
                )
                return UNKNOWN_COUNTRY
            except (httpx.HTTPError, ValueError) as e:
                # Invalid URL, undecodable body and the like
                logger.error("Unexpected error getting country for IP %s: %s", ip_address, e)
                return UNKNOWN_COUNTRY
            return self._extract_country(ip_address, payload)

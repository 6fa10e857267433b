"""
Registry Client

aiohttp client for the remote extension registry (market).
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import aiohttp

from ..core.config import RegistryConfig
from ..core.exceptions import RegistryError
from ..core.logging import get_logger
from ..core.models import DownloadMode, DownloadTicket, ExtensionDetail, VersionInfo
from ..lifecycle.interfaces import ExtensionRegistry

logger = get_logger(__name__)


class RegistryClient(ExtensionRegistry):
    """HTTP client for version listings, download tickets and details"""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        domain: Optional[str] = None,
        timeout: float = 30.0,
        max_retries: int = 2,
        retry_delay: float = 1.0,
        session_factory: Optional[Callable[[], aiohttp.ClientSession]] = None,
    ):
        """
        Initialize registry client

        Args:
            base_url: Registry base URL, e.g. ``https://host/market``
            api_key: Platform secret sent as ``X-API-Key``
            domain: Host domain sent as ``Domain``
            timeout: Request timeout in seconds
            max_retries: Retries for connection errors and 5xx responses
            retry_delay: Delay between retries in seconds
            session_factory: Factory for the aiohttp session (for tests)
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.domain = domain
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._session_factory = session_factory or self._default_session

    @classmethod
    def from_config(cls, config: RegistryConfig) -> "RegistryClient":
        return cls(
            base_url=config.base_url,
            api_key=config.api_key,
            domain=config.domain,
            timeout=config.timeout,
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json", "User-Agent": "EPLM-Registry-Client/1.0"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        if self.domain:
            headers["Domain"] = self.domain
        return headers

    def _default_session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        )

    def _url(self, *segments: str) -> str:
        return self.base_url + "/" + "/".join(quote(s, safe="") for s in segments)

    async def _request(self, method: str, *segments: str) -> Any:
        url = self._url(*segments)
        attempt = 0
        while True:
            try:
                return await self._send(method, url)
            except RegistryError as e:
                if not e.details.get("retryable") or attempt >= self.max_retries:
                    raise
                attempt += 1
                logger.warning(
                    f"Registry request {method} {url} failed ({e.message}), "
                    f"retrying {attempt}/{self.max_retries}"
                )
                await asyncio.sleep(self.retry_delay)

    async def _send(self, method: str, url: str) -> Any:
        try:
            async with self._session_factory() as session:
                async with session.request(method, url, headers=self._headers()) as response:
                    if response.status >= 400:
                        body = await response.text()
                        raise RegistryError(
                            f"Registry returned HTTP {response.status}",
                            {
                                "url": url,
                                "status": response.status,
                                "body": body[:500],
                                "retryable": response.status >= 500,
                            },
                        )
                    payload = await response.json(content_type=None)
        except RegistryError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RegistryError(
                f"Registry request failed: {e}", {"url": url, "retryable": True}
            )
        except ValueError as e:
            raise RegistryError(f"Invalid registry response: {e}", {"url": url})

        return self._unwrap(payload, url)

    @staticmethod
    def _unwrap(payload: Any, url: str) -> Any:
        # Envelopes look like {"code": 0, "message": "...", "data": ...}
        if isinstance(payload, dict) and "data" in payload:
            code = payload.get("code")
            if code not in (None, 0, 200):
                raise RegistryError(
                    payload.get("message") or f"Registry error code {code}",
                    {"url": url, "code": code},
                )
            return payload["data"]
        return payload

    async def get_versions(self, identifier: str) -> List[VersionInfo]:
        """Published versions of an extension, newest first."""
        data = await self._request("GET", "versions", identifier)
        if not isinstance(data, list):
            raise RegistryError(
                "Unexpected versions payload", {"identifier": identifier}
            )
        return [VersionInfo.model_validate(item) for item in data]

    async def get_download_url(
        self, identifier: str, version: str, mode: DownloadMode
    ) -> DownloadTicket:
        data = await self._request("POST", "download", identifier, version, mode.value)
        if not isinstance(data, dict) or not data.get("url"):
            raise RegistryError(
                "Registry did not return a download URL",
                {"identifier": identifier, "version": version},
            )
        return DownloadTicket.model_validate(data)

    async def get_detail(self, identifier: str) -> ExtensionDetail:
        data = await self._request("GET", "detail", identifier)
        if not isinstance(data, dict):
            raise RegistryError("Unexpected detail payload", {"identifier": identifier})
        data.setdefault("identifier", identifier)
        return ExtensionDetail.model_validate(data)

    async def notify_uninstall(self, identifier: str, version: str) -> None:
        await self._request("POST", "uninstall", identifier, version)
        logger.info(f"Notified registry of uninstall: {identifier}@{version}")

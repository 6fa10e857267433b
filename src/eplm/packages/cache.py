"""
Package Cache and Fetcher

Resolves previously downloaded extension archives in the temp root and
downloads missing ones from the registry-issued URL.
"""

import asyncio
import os
import re
import uuid
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import unquote, urlparse

import aiohttp

from ..core.exceptions import DownloadFailedError
from ..core.logging import get_logger
from ..core.naming import build_package_basename

logger = get_logger(__name__)

CHUNK_SIZE = 8192
PARTIAL_SUFFIX = ".part"
DEFAULT_SUFFIX = ".zip"

_CONTENT_DISPOSITION_FILENAME = re.compile(r"filename[^;=\n]*=((['\"]).*?\2|[^;\n]*)")


def _names_package(entry: str, basename: str) -> bool:
    # The basename must end at a suffix boundary
    if not entry.startswith(basename):
        return False
    return entry == basename or entry[len(basename)] == "."


class PackageCache:
    """Locates cached archives by their deterministic basename."""

    def __init__(self, temp_dir: Path):
        """
        Initialize package cache

        Args:
            temp_dir: Directory holding downloaded archives
        """
        self.temp_dir = Path(temp_dir)

    def resolve(self, identifier: str, version: Optional[str]) -> Optional[Path]:
        """
        Find an already-downloaded archive for identifier and version.

        A file named after the package basename, optionally followed by a
        suffix, is treated as a hit; no integrity check is made. A longer
        version sharing the prefix (1.0.10 for 1.0.1) is not a match.

        Args:
            identifier: Extension identifier
            version: Package version

        Returns:
            Path of the first matching archive, or None on a miss
        """
        if not self.temp_dir.exists():
            return None

        basename = build_package_basename(identifier, version)
        for entry in sorted(os.listdir(self.temp_dir)):
            if not _names_package(entry, basename) or entry.endswith(PARTIAL_SUFFIX):
                continue
            path = self.temp_dir / entry
            if path.is_file():
                return path
        return None

    def target_for(
        self, identifier: str, version: Optional[str], filename: Optional[str] = None
    ) -> Path:
        """
        Compute where a freshly downloaded archive must be written.

        Args:
            identifier: Extension identifier
            version: Package version
            filename: Name reported by the server, only its suffix is kept

        Returns:
            ``<temp_dir>/<basename><suffix>``
        """
        suffix = Path(filename).suffix if filename else ""
        return self.temp_dir / f"{build_package_basename(identifier, version)}{suffix or DEFAULT_SUFFIX}"

    def evict(self, archive_path: Path) -> None:
        """Drop a cached archive so the next fetch downloads it again."""
        try:
            Path(archive_path).unlink(missing_ok=True)
            logger.info(f"Evicted cached package: {archive_path}")
        except OSError as e:
            logger.warning(f"Failed to evict cached package {archive_path}: {e}")


def filename_from_url(url: str) -> Optional[str]:
    """Return the last path segment of a URL, or None when there is none."""
    try:
        segment = unquote(urlparse(url).path).rstrip("/").split("/")[-1]
    except ValueError:
        return None
    return segment or None


def filename_from_content_disposition(header: Optional[str]) -> Optional[str]:
    """Extract the file name from a Content-Disposition header."""
    if not header:
        return None
    match = _CONTENT_DISPOSITION_FILENAME.search(header)
    if not match or not match.group(1):
        return None
    name = match.group(1).replace('"', "").replace("'", "").strip()
    return os.path.basename(name) or None


class PackageFetcher:
    """Downloads extension archives into the package cache"""

    def __init__(
        self,
        cache: PackageCache,
        timeout: float = 30.0,
        max_retries: int = 2,
        retry_delay: float = 1.0,
        session_factory: Optional[Callable[[], aiohttp.ClientSession]] = None,
    ):
        """
        Initialize package fetcher

        Args:
            cache: Package cache consulted before any network request
            timeout: Total download timeout in seconds
            max_retries: Retries for connection errors and 5xx responses
            retry_delay: Delay between retries in seconds
            session_factory: Factory for the aiohttp session (for tests)
        """
        self.cache = cache
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._session_factory = session_factory or self._default_session

    def _default_session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            headers={"User-Agent": "EPLM-Package-Fetcher/1.0"},
        )

    async def fetch(self, url: str, identifier: str, version: Optional[str]) -> Path:
        """
        Return the archive for identifier/version, downloading it on a cache miss.

        Args:
            url: Download URL issued by the registry
            identifier: Extension identifier
            version: Package version

        Returns:
            Path to the cached archive

        Raises:
            DownloadFailedError: If the archive cannot be downloaded
        """
        cached = self.cache.resolve(identifier, version)
        if cached:
            logger.info(f"Using cached package for {identifier}@{version}: {cached}")
            return cached

        attempt = 0
        while True:
            try:
                return await self._download(url, identifier, version)
            except DownloadFailedError as e:
                retryable = e.details.get("retryable", False)
                if not retryable or attempt >= self.max_retries:
                    raise
                attempt += 1
                logger.warning(
                    f"Download of {identifier}@{version} failed ({e.message}), "
                    f"retrying {attempt}/{self.max_retries}"
                )
                await asyncio.sleep(self.retry_delay)

    async def _download(self, url: str, identifier: str, version: Optional[str]) -> Path:
        logger.info(f"Downloading {identifier}@{version} from {url}")
        self.cache.temp_dir.mkdir(parents=True, exist_ok=True)

        partial_path: Optional[Path] = None
        try:
            async with self._session_factory() as session:
                async with session.get(url) as response:
                    if response.status != 200:
                        raise DownloadFailedError(
                            f"Download extension failed: HTTP {response.status}",
                            {"url": url, "retryable": response.status >= 500},
                        )

                    filename = (
                        filename_from_content_disposition(
                            response.headers.get("Content-Disposition")
                        )
                        or filename_from_url(url)
                        or f"{uuid.uuid4()}{DEFAULT_SUFFIX}"
                    )
                    target_path = self.cache.target_for(identifier, version, filename)
                    partial_path = target_path.with_name(target_path.name + PARTIAL_SUFFIX)

                    downloaded = 0
                    with open(partial_path, "wb") as f:
                        async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                            f.write(chunk)
                            downloaded += len(chunk)

            os.replace(partial_path, target_path)
            partial_path = None
            logger.info(f"Downloaded {downloaded} bytes to {target_path}")
            return target_path

        except DownloadFailedError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DownloadFailedError(
                f"Download extension failed: {e}", {"url": url, "retryable": True}
            )
        except OSError as e:
            raise DownloadFailedError(f"Download extension failed: {e}", {"url": url})
        finally:
            if partial_path is not None and partial_path.exists():
                try:
                    partial_path.unlink()
                except OSError as e:
                    logger.warning(f"Failed to clean up partial download {partial_path}: {e}")

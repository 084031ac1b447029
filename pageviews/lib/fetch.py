"""
HTTPX-based downloader for hourly pageview dumps.
"""

import logging
from pathlib import Path
from typing import Optional

import httpx

from .hours import HourWindow

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class DumpFetcher:
    """
    Downloads one hourly dump to a temp file and removes it afterwards.

    Failures are logged and swallowed: ``fetch`` always returns the temp path,
    whether or not a complete file landed there. Reading that path is what
    fails when the download did not work.
    """

    def __init__(
        self,
        temp_dir: Path,
        url_template: str,
        connect_timeout_sec: float = 15.0,
        read_timeout_sec: float = 15.0,
        verify_tls: bool = False,
        user_agent: Optional[str] = None,
        client: Optional[httpx.Client] = None,
    ):
        """
        Args:
            temp_dir: Directory for ``yyyyMMdd-HH.gz`` downloads
            url_template: Dump URL with {year}, {month}, {iso_date}, {hhmmss}
            connect_timeout_sec: Connect timeout
            read_timeout_sec: Read timeout between chunks
            verify_tls: Verify the dump host's certificate. Only this
                fetcher's client is affected, never other TLS traffic.
            user_agent: User-Agent header
            client: Pre-built client (tests pass one with a mock transport)
        """
        self.temp_dir = Path(temp_dir)
        self.url_template = url_template

        if client is None:
            timeout = httpx.Timeout(
                connect=connect_timeout_sec,
                read=read_timeout_sec,
                write=read_timeout_sec,
                pool=None,
            )
            headers = {"User-Agent": user_agent} if user_agent else None
            client = httpx.Client(
                timeout=timeout,
                verify=verify_tls,
                follow_redirects=True,
                headers=headers,
            )
            if not verify_tls:
                logger.info("TLS certificate verification disabled for dump downloads")
        self.client = client

        self.downloads_ok = 0
        self.downloads_failed = 0
        self.last_error: Optional[str] = None

    def url_for(self, window: HourWindow) -> str:
        return window.download_url(self.url_template)

    def fetch(self, window: HourWindow) -> Path:
        """
        Download the dump for ``window`` to ``temp/yyyyMMdd-HH.gz``.

        Returns:
            The temp path, also when the download failed
        """
        url = self.url_for(window)
        target = window.temp_path(self.temp_dir)
        self.last_error = None

        logger.info(f"Downloading {url} -> {target}")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with self.client.stream("GET", url) as response:
                response.raise_for_status()
                written = 0
                with open(target, "wb") as handle:
                    for chunk in response.iter_bytes(CHUNK_SIZE):
                        handle.write(chunk)
                        written += len(chunk)
        except (httpx.HTTPError, OSError) as e:
            self.downloads_failed += 1
            self.last_error = str(e)
            logger.error(f"Error downloading wiki file from {url} to {target}: {e}", exc_info=True)
            return target

        self.downloads_ok += 1
        logger.info(f"Downloaded {written:,} bytes to {target}")
        return target

    def cleanup(self, path: Path) -> bool:
        """Delete a downloaded dump. Returns False (and logs) on failure."""
        try:
            Path(path).unlink()
        except OSError as e:
            logger.warning(f"Could not delete temp file {path}: {e}")
            return False
        logger.debug(f"Deleted temp file {path}")
        return True

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "DumpFetcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

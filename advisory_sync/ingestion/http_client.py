"""
HTTP utilities for the archive transport.

A thin requests session wrapper: authenticated, proxied, streamed
downloads with a single attempt per call. Retrying is the job of the
explicit retry policy layered above the transport.
"""
import logging
from pathlib import Path
from typing import Dict, Optional, Tuple

import requests

logger = logging.getLogger(__name__)


class HttpClient:
    """HTTP client used to download feed archives."""

    def __init__(
        self,
        auth: Optional[Tuple[str, str]] = None,
        proxy: Optional[str] = None,
        timeout_seconds: float = 600.0,
        session: Optional[requests.Session] = None,
    ):
        self.session = session or requests.Session()
        self.timeout_seconds = timeout_seconds
        if auth:
            self.session.auth = auth
        if proxy:
            proxy_url = proxy if "://" in proxy else f"http://{proxy}"
            self.session.proxies.update({"http": proxy_url, "https": proxy_url})

    def download_to_file(self, url: str, destination: Path, headers: Optional[Dict[str, str]] = None) -> int:
        """
        Stream url into destination, replacing it only after a complete download.

        Returns:
            Number of bytes written

        Raises:
            requests.RequestException: On connection errors or HTTP status >= 400
        """
        response = self.session.get(url, headers=headers, timeout=self.timeout_seconds, stream=True)
        if response.status_code >= 400:
            logger.debug(f"GET {url} returned HTTP {response.status_code}")
            response.raise_for_status()

        destination.parent.mkdir(parents=True, exist_ok=True)
        temp_path = destination.with_suffix(destination.suffix + ".part")
        written = 0

        try:
            with open(temp_path, "wb") as handle:
                for chunk in response.iter_content(chunk_size=1024 * 1024):
                    if chunk:
                        handle.write(chunk)
                        written += len(chunk)
        except BaseException:
            temp_path.unlink(missing_ok=True)
            raise

        temp_path.replace(destination)
        return written

"""HTTP client factory."""

import logging
from typing import Optional

import httpx

from certchain import __version__

logger = logging.getLogger(__name__)

USER_AGENT = f"certchain/{__version__}"


def create_http_client(
    proxy: Optional[str] = None,
    timeout: float = 10.0,
    follow_redirects: bool = True,
) -> httpx.Client:
    """
    Create an httpx client for fetching certificates.

    Args:
        proxy: Proxy URL (e.g., http://proxy:8080)
        timeout: Request timeout in seconds, 0 disables the timeout
        follow_redirects: Follow HTTP redirects

    Returns:
        httpx.Client; the caller closes it
    """
    client_timeout = httpx.Timeout(timeout if timeout else None)
    if proxy:
        logger.debug(f"Using proxy {proxy}")
    return httpx.Client(
        proxy=proxy,
        timeout=client_timeout,
        follow_redirects=follow_redirects,
        headers={"User-Agent": USER_AGENT},
    )

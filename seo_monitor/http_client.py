"""
Outbound HTTP client for notifications and report delivery

Blocking requests wrapper used by the webhook/Slack notifiers, the HTTP report
sink and ops notifications. Calls run on worker threads (asyncio.to_thread),
never on the event loop.

Usage:
    from seo_monitor import http_client

    response = http_client.post(webhook_url, json=payload, timeout=10)

Security Features:
    - SSL verification always enabled (verify=True)
    - HTTPS required for every destination
    - Default timeout on all requests
"""

import threading

import requests

from seo_monitor import __version__

USER_AGENT = f"seo-monitor/{__version__}"


class SecureHTTPClient:
    """
    requests.Session wrapper enforcing HTTPS, SSL verification and timeouts.
    """

    DEFAULT_TIMEOUT = 30  # seconds

    def __init__(self, session: requests.Session | None = None, timeout: float = DEFAULT_TIMEOUT):
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", USER_AGENT)
        self.timeout = timeout

    def post(self, url: str, **kwargs) -> requests.Response:
        """
        POST with SSL verification enforced.

        Raises:
            ValueError: If the URL is not HTTPS
            requests.RequestException: On transport failure
        """
        if not url.startswith("https://"):
            raise ValueError(f"Refusing to send over insecure URL: {url}")

        kwargs["verify"] = True
        kwargs.setdefault("timeout", self.timeout)
        return self.session.post(url, **kwargs)


_default_client: SecureHTTPClient | None = None
_default_lock = threading.Lock()


def _client() -> SecureHTTPClient:
    global _default_client
    with _default_lock:
        if _default_client is None:
            _default_client = SecureHTTPClient()
        return _default_client


def post(url: str, **kwargs) -> requests.Response:
    """Secure POST through the shared session (see SecureHTTPClient.post)."""
    return _client().post(url, **kwargs)

import asyncio
import functools
import importlib.metadata
import logging
import urllib.parse
from typing import Dict, Optional, Union

import requests
from pydantic import ValidationError

from dohgate.upstream_reply import UpstreamReply

logger = logging.getLogger(__name__)

try:
    DOHGATE_VERSION = importlib.metadata.version("dohgate")
except importlib.metadata.PackageNotFoundError:  # pragma: no cover - source checkout
    DOHGATE_VERSION = "unknown"

DEFAULT_DOH_URL = "https://dns.google.com/resolve"


class UpstreamError(Exception):
    """
    Brief: JSON DNS-over-HTTPS upstream failure.

    Inputs:
    - message: Description of the network, HTTP or body decoding failure

    Outputs:
    - Exception instance
    """

    pass


def query_name(qname: object) -> str:
    """
    Brief: Render a query name for the ``name`` URL parameter.

    Inputs:
    - qname: str or dnslib DNSLabel

    Outputs:
    - str: name without trailing dot (the root stays ".")

    Example:
        >>> query_name("example.com.")
        'example.com'
        >>> query_name(".")
        '.'
    """
    text = str(qname)
    return text.rstrip(".") or "."


def build_url(endpoint: str, qname: object, qtype: int) -> str:
    """
    Brief: Embed the domain name and numeric type into the endpoint query string.

    Inputs:
    - endpoint: Base resolver URL, e.g. https://dns.google.com/resolve
    - qname: Query name
    - qtype: Numeric DNS type code

    Outputs:
    - str: Full request URL; existing query parameters are preserved

    Example:
        >>> build_url("https://dns.google.com/resolve", "example.com.", 1)
        'https://dns.google.com/resolve?name=example.com&type=1'
    """
    parsed = urllib.parse.urlparse(endpoint)
    params = urllib.parse.parse_qsl(parsed.query, keep_blank_values=True)
    params = [(k, v) for (k, v) in params if k not in ("name", "type")]
    params.extend([("name", query_name(qname)), ("type", str(int(qtype)))])
    return urllib.parse.urlunparse(
        parsed._replace(query=urllib.parse.urlencode(params))
    )


def decode_reply(body: Union[bytes, str]) -> UpstreamReply:
    """
    Brief: Validate a JSON body against the upstream reply shape.

    Inputs:
    - body: Raw response body

    Outputs:
    - UpstreamReply

    Raises:
    - UpstreamError when the body is not JSON or does not match the shape
    """
    try:
        return UpstreamReply.model_validate_json(body)
    except ValidationError as e:
        raise UpstreamError(f"Undecodable upstream reply: {e}") from e


class DoHJsonClient:
    """
    Brief: Client for JSON DoH resolvers (``/resolve?name=&type=``).

    Inputs:
    - url: Resolver endpoint (default https://dns.google.com/resolve)
    - headers: Optional extra HTTP headers
    - timeout_ms: Optional request timeout; None keeps the transport default
    - verify: Verify TLS certificates
    - ca_file: Optional CA bundle path used when verify is enabled

    Outputs:
    - DoHJsonClient instance

    Example:
        >>> client = DoHJsonClient()
        >>> # reply = await client.forward(1, "example.com")
    """

    def __init__(
        self,
        url: str = DEFAULT_DOH_URL,
        *,
        headers: Optional[Dict[str, str]] = None,
        timeout_ms: Optional[int] = None,
        verify: bool = True,
        ca_file: Optional[str] = None,
    ) -> None:
        parsed = urllib.parse.urlparse(url)
        if parsed.scheme not in ("https", "http"):
            raise ValueError(f"Unsupported URL scheme: {parsed.scheme}")
        self.url = url
        self.headers = {"Accept": "application/dns-json", **(headers or {})}
        # Preserve any explicit header regardless of casing.
        if not any(k.lower() == "user-agent" for k in self.headers):
            self.headers["User-Agent"] = f"dohgate v{DOHGATE_VERSION}"
        self.timeout = timeout_ms / 1000.0 if timeout_ms else None
        self.verify: Union[bool, str] = (ca_file or True) if verify else False

    def _get(self, url: str) -> bytes:
        """Blocking GET; runs on the event loop's default executor."""
        try:
            resp = requests.get(
                url, headers=self.headers, timeout=self.timeout, verify=self.verify
            )
        except requests.RequestException as e:
            raise UpstreamError(f"Network error: {e}") from e
        if resp.status_code != 200:
            raise UpstreamError(f"HTTP {resp.status_code}: {resp.reason}")
        return resp.content

    async def forward(self, qtype: int, qname: object) -> UpstreamReply:
        """
        Brief: Issue one DoH GET for (qname, qtype) and decode the reply.

        Inputs:
        - qtype: Numeric DNS type code
        - qname: Query name

        Outputs:
        - UpstreamReply

        Raises:
        - UpstreamError on network/HTTP failures or an undecodable body.
          There is no retry.
        """
        url = build_url(self.url, qname, qtype)
        logger.debug("forwarding %s", url)
        loop = asyncio.get_running_loop()
        body = await loop.run_in_executor(None, functools.partial(self._get, url))
        return decode_reply(body)

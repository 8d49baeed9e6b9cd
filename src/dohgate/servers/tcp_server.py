import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger("dohgate.tcp_server")


async def _read_exact(reader: asyncio.StreamReader, n: int) -> bytes:
    """
    Read exactly n bytes from an asyncio StreamReader.

    Inputs:
      - reader: asyncio.StreamReader
      - n: Number of bytes to read
    Outputs:
      - bytes: Exactly n bytes unless EOF occurs early.
    """
    data = b""
    while len(data) < n:
        chunk = await reader.read(n - len(data))
        if not chunk:
            break
        data += chunk
    return data


async def _handle_conn(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    handler: Callable[[bytes, str], Awaitable[Optional[bytes]]],
    idle_timeout: float = 15.0,
) -> None:
    """
    Handle a single DNS-over-TCP connection (RFC 1035 4.2.2 length framing).

    Inputs:
      - reader: StreamReader
      - writer: StreamWriter
      - handler: coroutine function (query_bytes, client_ip) -> response bytes or None
      - idle_timeout: Seconds before closing an idle connection
    Outputs:
      - None
    """
    peer = writer.get_extra_info("peername")
    client_ip = peer[0] if isinstance(peer, tuple) else "0.0.0.0"
    try:
        while True:
            hdr = await asyncio.wait_for(_read_exact(reader, 2), timeout=idle_timeout)
            if len(hdr) != 2:
                break
            ln = int.from_bytes(hdr, byteorder="big")
            if ln <= 0:
                break
            query = await asyncio.wait_for(
                _read_exact(reader, ln), timeout=idle_timeout
            )
            if len(query) != ln:
                break
            try:
                response = await handler(query, client_ip)
            except Exception:
                logger.exception("Unhandled error resolving query from %s", client_ip)
                break
            # No response: close without writing so the client times out.
            if not response:
                break
            writer.write(len(response).to_bytes(2, "big") + response)
            await writer.drain()
    except asyncio.TimeoutError:
        logger.debug("Idle TCP connection from %s timed out", client_ip)
    except (ConnectionError, asyncio.IncompleteReadError) as e:
        logger.debug("TCP connection from %s failed: %s", client_ip, e)
    finally:
        try:
            writer.close()
            await writer.wait_closed()
        except ConnectionError:  # pragma: no cover - peer already gone
            pass


async def serve_tcp(
    host: str,
    port: int,
    handler: Callable[[bytes, str], Awaitable[Optional[bytes]]],
    *,
    idle_timeout: float = 15.0,
) -> None:
    """
    Serve DNS-over-TCP on host:port until cancelled.

    Inputs:
      - host: Listen address
      - port: Listen port
      - handler: coroutine function (query_bytes, client_ip) -> response bytes or None
      - idle_timeout: Seconds before idle connections are closed
    Outputs:
      - None (runs forever)

    Example:
      >>> # asyncio.run(serve_tcp('127.0.0.1', 5353, resolver.handle))
    """
    server = await asyncio.start_server(
        lambda r, w: _handle_conn(r, w, handler, idle_timeout), host, port
    )
    async with server:
        await server.serve_forever()

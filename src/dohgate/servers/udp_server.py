import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

logger = logging.getLogger("dohgate.udp_server")

QueryHandler = Callable[[bytes, str], Awaitable[Optional[bytes]]]


class DNSDatagramProtocol(asyncio.DatagramProtocol):
    """
    Brief: UDP DNS endpoint that resolves each datagram in its own task.

    Inputs:
    - handler: coroutine function (query_bytes, client_ip) -> response bytes or None

    Outputs:
    - DatagramProtocol instance

    Notes:
    - A None response means nothing is sent and the client observes a timeout.
    """

    def __init__(self, handler: QueryHandler) -> None:
        self.handler = handler
        self.transport: Optional[asyncio.DatagramTransport] = None
        self._tasks: Set[asyncio.Task] = set()

    def connection_made(self, transport) -> None:
        self.transport = transport

    def datagram_received(self, data: bytes, addr) -> None:
        task = asyncio.get_running_loop().create_task(self._answer(data, addr))
        # Keep a strong reference until the task finishes.
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _answer(self, data: bytes, addr) -> None:
        client_ip = addr[0] if isinstance(addr, tuple) else "0.0.0.0"
        try:
            wire = await self.handler(data, client_ip)
        except Exception:
            logger.exception("Unhandled error resolving query from %s", client_ip)
            return
        if not wire or self.transport is None:
            return
        self.transport.sendto(wire, addr)

    def error_received(self, exc: Exception) -> None:  # pragma: no cover - OS-level
        logger.warning("UDP socket error: %s", exc)


async def serve_udp(host: str, port: int, handler: QueryHandler) -> None:
    """
    Brief: Serve DNS-over-UDP until cancelled.

    Inputs:
    - host: listen address
    - port: listen port
    - handler: coroutine function mapping (query_bytes, client_ip) -> response bytes or None

    Outputs:
    - None (runs until the surrounding task is cancelled)

    Example:
        >>> # asyncio.run(serve_udp('127.0.0.1', 5353, resolver.handle))
    """
    loop = asyncio.get_running_loop()
    transport, _ = await loop.create_datagram_endpoint(
        lambda: DNSDatagramProtocol(handler), local_addr=(host, port)
    )
    try:
        await asyncio.Future()
    finally:
        transport.close()

"""Resolution policy: local zone first, forward on miss, silent drop otherwise.

Brief:
  ``resolve`` decides the outcome for a single parsed query. ``QueryResolver``
  wraps it for the listeners, which deal in raw bytes and expect ``None`` when
  nothing should be sent back.
"""

import logging
from typing import Optional, Protocol

from dnslib import QTYPE, RCODE, DNSHeader, DNSRecord

from dohgate.assembler import assemble
from dohgate.records import ProtocolTranslationError, is_supported
from dohgate.servers.transports.doh_json import UpstreamError
from dohgate.upstream_reply import UpstreamReply
from dohgate.zone_store import ZoneAnswer

logger = logging.getLogger("dohgate.resolver")


class LocalStore(Protocol):
    def lookup(self, name: object, qtype: int) -> ZoneAnswer: ...


class Upstream(Protocol):
    async def forward(self, qtype: int, qname: object) -> UpstreamReply: ...


def _local_reply(request: DNSRecord, answer: ZoneAnswer) -> DNSRecord:
    """Brief: Wrap a local zone answer into a response packet for ``request``."""

    reply = DNSRecord(
        DNSHeader(
            id=request.header.id,
            qr=1,
            aa=1,
            rd=request.header.rd,
            ra=1,
            rcode=answer.rcode,
        ),
        q=request.q,
    )
    for rr in answer.answers:
        reply.add_answer(rr)
    for rr in answer.authorities:
        reply.add_auth(rr)
    return reply


async def resolve(
    local_store: LocalStore, request: DNSRecord, upstream: Upstream
) -> Optional[DNSRecord]:
    """Brief: Resolve one query packet.

    Inputs:
      - local_store: Object exposing ``lookup(name, qtype) -> ZoneAnswer``.
      - request: Parsed client query.
      - upstream: Object exposing ``async forward(qtype, qname)``.

    Outputs:
      - DNSRecord answer, or None when no response must be sent (zero or
        several questions, unsupported type on a local miss).

    Raises:
      - ProtocolTranslationError when the upstream reply cannot be translated.
      - UpstreamError when the upstream request fails.
    """

    if len(request.questions) != 1:
        logger.debug(
            "Ignoring packet id=%d with %d questions",
            request.header.id,
            len(request.questions),
        )
        return None

    q = request.questions[0]
    qname = str(q.qname)
    qtype = int(q.qtype)
    type_name = QTYPE.get(qtype, str(qtype))

    local = local_store.lookup(qname, qtype)
    if local.rcode == RCODE.NOERROR:
        logger.info("Local match for %s %s", qname, type_name)
        return _local_reply(request, local)

    if not is_supported(qtype):
        logger.info(
            "Could not recognize request type %d for name %s, failing quietly",
            qtype,
            qname,
        )
        return None

    logger.debug("No local match for %s %s, forwarding", qname, type_name)
    reply = await upstream.forward(qtype, q.qname)
    return assemble(request.header.id, reply)


class QueryResolver:
    """
    Brief: Bytes-in/bytes-out entry point shared by the UDP and TCP listeners.

    Inputs:
    - local_store: Read-only zone store
    - upstream: JSON DoH client

    Outputs:
    - QueryResolver instance

    Example:
        >>> # wire = await QueryResolver(store, client).handle(data, "127.0.0.1")
    """

    def __init__(self, local_store: LocalStore, upstream: Upstream) -> None:
        self.local_store = local_store
        self.upstream = upstream

    async def resolve(self, request: DNSRecord) -> Optional[DNSRecord]:
        return await resolve(self.local_store, request, self.upstream)

    async def handle(self, data: bytes, client_ip: str) -> Optional[bytes]:
        """Brief: Resolve wire-format query bytes.

        Inputs:
          - data: Wire-format DNS query.
          - client_ip: Requesting client address, used for logging.

        Outputs:
          - Packed response bytes, or None when nothing should be sent. Per-query
            failures are logged and turned into None; the client sees a timeout.
        """
        try:
            request = DNSRecord.parse(data)
        except Exception as e:
            logger.debug("Unparseable query from %s: %s", client_ip, e)
            return None

        try:
            response = await self.resolve(request)
        except ProtocolTranslationError as e:
            logger.warning(
                "Translation failed for query id=%d from %s: %s",
                request.header.id,
                client_ip,
                e,
            )
            return None
        except UpstreamError as e:
            logger.warning(
                "Upstream failed for query id=%d from %s: %s",
                request.header.id,
                client_ip,
                e,
            )
            return None

        if response is None:
            return None
        try:
            return response.pack()
        except Exception as e:
            # dnslib validates label lengths and field ranges only when packing.
            logger.warning(
                "Failed to pack response id=%d for %s: %s",
                request.header.id,
                client_ip,
                e,
            )
            return None


async def resolve_query_bytes(
    data: bytes, client_ip: str, local_store: LocalStore, upstream: Upstream
) -> Optional[bytes]:
    """Brief: Convenience wrapper around ``QueryResolver.handle``."""

    return await QueryResolver(local_store, upstream).handle(data, client_ip)

"""Response assembly: UpstreamReply -> wire-format dnslib.DNSRecord."""

from __future__ import annotations

import enum
import logging
from typing import List

from dnslib import EDNS0, OPCODE, RR, DNSHeader, DNSRecord

from .records import ProtocolTranslationError, decode_question, decode_record
from .upstream_reply import UpstreamRecord, UpstreamReply

logger = logging.getLogger(__name__)


class ResponseCode(enum.IntEnum):
    """Standard DNS response codes, including the EDNS/TSIG extended range."""

    NOERROR = 0
    FORMERR = 1
    SERVFAIL = 2
    NXDOMAIN = 3
    NOTIMP = 4
    REFUSED = 5
    YXDOMAIN = 6
    YXRRSET = 7
    NXRRSET = 8
    NOTAUTH = 9
    NOTZONE = 10
    BADVERS = 16
    BADKEY = 17
    BADTIME = 18
    BADMODE = 19
    BADNAME = 20
    BADALG = 21


def response_code_of(status: int) -> ResponseCode:
    """Brief: Map an upstream ``Status`` integer to a ResponseCode.

    Inputs:
      - status: Integer status from the JSON reply.

    Outputs:
      - ResponseCode member.

    Raises:
      - ProtocolTranslationError when status is not a known response code.

    Example:
      >>> response_code_of(3)
      <ResponseCode.NXDOMAIN: 3>
    """

    try:
        return ResponseCode(int(status))
    except ValueError as exc:
        raise ProtocolTranslationError(
            f"unknown upstream status {status!r}"
        ) from exc


def _decode_section(entries: List[UpstreamRecord]) -> List[RR]:
    return [decode_record(entry) for entry in entries]


def assemble(request_id: int, reply: UpstreamReply) -> DNSRecord:
    """Brief: Build the final answer packet from a decoded upstream reply.

    Inputs:
      - request_id: 16-bit id copied from the client's query.
      - reply: UpstreamReply decoded from the DoH JSON body.

    Outputs:
      - DNSRecord with qr=1, opcode=QUERY, aa=0, tc/rd/ra copied from the
        upstream, questions echoed from ``reply.questions`` and the decoded
        answer and authority sections. Additionals stay empty except for an
        EDNS0 OPT record carrying the upper bits of an extended rcode.

    Raises:
      - ProtocolTranslationError when the status or any single record cannot
        be translated; no partial packet is produced.
    """

    rcode = response_code_of(reply.status)
    questions = [decode_question(q) for q in reply.questions]
    answers = _decode_section(reply.answers)
    authorities = _decode_section(reply.authorities)

    header = DNSHeader(
        id=request_id,
        qr=1,
        opcode=OPCODE.QUERY,
        aa=0,
        tc=int(reply.tc),
        rd=int(reply.rd),
        ra=int(reply.ra),
        rcode=int(rcode) & 0xF,
    )
    packet = DNSRecord(header, questions=questions, rr=answers, auth=authorities)

    # Header rcode is 4 bits wide; 16+ needs the OPT ext_rcode byte (RFC 6891).
    if int(rcode) > 0xF:
        packet.add_ar(EDNS0(ext_rcode=int(rcode) >> 4))

    logger.debug(
        "assembled id=%d rcode=%s answers=%d authorities=%d",
        request_id,
        rcode.name,
        len(answers),
        len(authorities),
    )
    return packet

"""Record codec: JSON scalar payloads <-> typed dnslib resource records.

Brief:
  The JSON DoH dialect carries every record as ``{name, type, TTL, data}``
  where ``data`` is a presentation-format string. This module owns the fixed
  table of record kinds the gateway understands and the per-kind parsers and
  formatters for that string.

Notes:
  - ``RecordKind`` is the single code <-> kind table; both directions are
    served by the enum itself.
  - Each kind has exactly one decoder and one encoder registered in the
    dispatch tables below.
"""

from __future__ import annotations

import enum
import ipaddress
import logging
from typing import Any, Callable, Dict, Optional

from dnslib import AAAA, CLASS, CNAME, MX, RR, SOA, A, DNSLabel, DNSQuestion, RD
from dnslib.label import DNSLabelError

logger = logging.getLogger(__name__)

_U32_MAX = 0xFFFFFFFF
_U16_MAX = 0xFFFF


class ProtocolTranslationError(ValueError):
    """
    Brief: Raised when an upstream JSON entry cannot be translated to wire DNS.

    Inputs:
    - message: Description of the malformed payload or unknown code

    Outputs:
    - Exception instance
    """

    pass


class UnsupportedRecordType(ProtocolTranslationError):
    """
    Brief: Raised when a type code outside the handled set reaches the codec.

    Inputs:
    - code: Offending numeric type code

    Outputs:
    - Exception instance with ``code`` attribute
    """

    def __init__(self, code: int) -> None:
        super().__init__(f"unsupported record type {code}")
        self.code = code


class RecordKind(enum.IntEnum):
    """Record kinds handled by the gateway, valued by their wire type code."""

    A = 1
    CNAME = 5
    SOA = 6
    MX = 15
    AAAA = 28


def record_type_of(code: int) -> Optional[RecordKind]:
    """Brief: Map a numeric DNS type code to a RecordKind.

    Inputs:
      - code: Numeric type code (e.g. 1 for A).

    Outputs:
      - RecordKind, or None when the code is not handled.

    Example:
      >>> record_type_of(15)
      <RecordKind.MX: 15>
      >>> record_type_of(16) is None
      True
    """

    try:
        return RecordKind(int(code))
    except ValueError:
        return None


def is_supported(code: int) -> bool:
    """Return True when ``code`` is one of the handled record kinds."""

    return record_type_of(code) is not None


def _require_kind(code: int) -> RecordKind:
    kind = record_type_of(code)
    if kind is None:
        raise UnsupportedRecordType(code)
    return kind


def _label(text: str) -> DNSLabel:
    """Brief: Build a DNSLabel from upstream text, rejecting invalid names.

    Raises:
      - ProtocolTranslationError for empty labels or labels over 63 octets.
    """

    try:
        return DNSLabel(text)
    except (UnicodeError, DNSLabelError) as exc:
        raise ProtocolTranslationError(f"invalid domain name {text!r}: {exc}") from exc


def _parse_u32(token: str, field: str) -> int:
    try:
        value = int(token)
    except ValueError as exc:
        raise ProtocolTranslationError(
            f"invalid {field} {token!r}: not an integer"
        ) from exc
    if not 0 <= value <= _U32_MAX:
        raise ProtocolTranslationError(
            f"invalid {field} {value}: outside unsigned 32-bit range"
        )
    return value


def _decode_a(data: str) -> RD:
    try:
        addr = ipaddress.IPv4Address(data)
    except ValueError as exc:
        raise ProtocolTranslationError(f"invalid IPv4 address {data!r}") from exc
    return A(str(addr))


def _decode_aaaa(data: str) -> RD:
    try:
        addr = ipaddress.IPv6Address(data)
    except ValueError as exc:
        raise ProtocolTranslationError(f"invalid IPv6 address {data!r}") from exc
    return AAAA(str(addr))


def _decode_cname(data: str) -> RD:
    return CNAME(_label(data))


def _decode_mx(data: str) -> RD:
    """Brief: Parse ``"<priority> <exchange>"``.

    Inputs:
      - data: MX payload; the exchange is everything after the first space.

    Outputs:
      - dnslib.MX rdata.
    """

    priority_raw, sep, exchange = data.partition(" ")
    if not sep:
        raise ProtocolTranslationError(f"invalid MX payload {data!r}: missing space")
    try:
        priority = int(priority_raw)
    except ValueError as exc:
        raise ProtocolTranslationError(
            f"invalid MX priority {priority_raw!r}"
        ) from exc
    if not 0 <= priority <= _U16_MAX:
        raise ProtocolTranslationError(f"MX priority {priority} out of range")
    return MX(_label(exchange), preference=priority)


def _decode_soa(data: str) -> RD:
    """Brief: Parse the seven-token SOA payload.

    Inputs:
      - data: ``"mname rname serial refresh retry expire minimum"``.

    Outputs:
      - dnslib.SOA rdata.

    Example:
      >>> rd = _decode_soa("ns1.example.com. admin.example.com. 100 200 300 400 500")
      >>> rd.times
      (100, 200, 300, 400, 500)
    """

    tokens = data.split()
    if len(tokens) != 7:
        raise ProtocolTranslationError(
            f"invalid SOA payload {data!r}: expected 7 tokens, got {len(tokens)}"
        )
    mname, rname = tokens[0], tokens[1]
    fields = ("serial", "refresh", "retry", "expire", "minimum")
    times = tuple(_parse_u32(tok, f) for tok, f in zip(tokens[2:], fields))
    return SOA(_label(mname), _label(rname), times)


def _encode_a(rdata: RD) -> str:
    return str(ipaddress.IPv4Address(str(rdata)))


def _encode_aaaa(rdata: RD) -> str:
    return str(ipaddress.IPv6Address(str(rdata)))


def _encode_cname(rdata: RD) -> str:
    return str(rdata.label)


def _encode_mx(rdata: RD) -> str:
    return f"{int(rdata.preference)} {rdata.label}"


def _encode_soa(rdata: RD) -> str:
    times = " ".join(str(int(t)) for t in rdata.times)
    return f"{rdata.mname} {rdata.rname} {times}"


_DECODERS: Dict[RecordKind, Callable[[str], RD]] = {
    RecordKind.A: _decode_a,
    RecordKind.CNAME: _decode_cname,
    RecordKind.SOA: _decode_soa,
    RecordKind.MX: _decode_mx,
    RecordKind.AAAA: _decode_aaaa,
}

_ENCODERS: Dict[RecordKind, Callable[[RD], str]] = {
    RecordKind.A: _encode_a,
    RecordKind.CNAME: _encode_cname,
    RecordKind.SOA: _encode_soa,
    RecordKind.MX: _encode_mx,
    RecordKind.AAAA: _encode_aaaa,
}


def decode_rdata(kind: RecordKind, data: str) -> RD:
    """Brief: Parse a presentation-format payload for a known kind.

    Inputs:
      - kind: RecordKind selecting the parser.
      - data: Payload string from the JSON ``data`` field.

    Outputs:
      - dnslib RD instance of the matching variant.

    Raises:
      - ProtocolTranslationError on malformed payloads.
    """

    return _DECODERS[kind](data)


def encode_rdata(kind: RecordKind, rdata: RD) -> str:
    """Brief: Format a dnslib RD instance as its JSON ``data`` string."""

    return _ENCODERS[kind](rdata)


def decode_record(entry: Any) -> RR:
    """Brief: Translate one upstream record entry into a dnslib RR.

    Inputs:
      - entry: Object exposing ``name``, ``rtype``, ``ttl`` and ``data``
        (normally an UpstreamRecord).

    Outputs:
      - dnslib.RR with class IN and the typed rdata for the declared code.

    Raises:
      - UnsupportedRecordType when the declared code is not handled.
      - ProtocolTranslationError when the payload is malformed.

    Example:
      >>> from dohgate.upstream_reply import UpstreamRecord
      >>> rr = decode_record(UpstreamRecord(name="example.com", type=1, TTL=300, data="93.184.216.34"))
      >>> str(rr.rdata), rr.ttl
      ('93.184.216.34', 300)
    """

    kind = _require_kind(entry.rtype)
    ttl = int(entry.ttl)
    if not 0 <= ttl <= _U32_MAX:
        raise ProtocolTranslationError(f"TTL {ttl} outside unsigned 32-bit range")
    rdata = decode_rdata(kind, entry.data)
    return RR(
        rname=_label(entry.name),
        rtype=int(kind),
        rclass=CLASS.IN,
        ttl=ttl,
        rdata=rdata,
    )


def decode_question(entry: Any) -> DNSQuestion:
    """Brief: Translate an upstream question entry into a dnslib DNSQuestion.

    Inputs:
      - entry: Object exposing ``name`` and ``qtype``.

    Outputs:
      - DNSQuestion with class IN.

    Raises:
      - UnsupportedRecordType when the question type is not handled.
    """

    kind = _require_kind(entry.qtype)
    return DNSQuestion(_label(entry.name), int(kind), CLASS.IN)


def encode_record(rr: RR) -> Dict[str, Any]:
    """Brief: Produce the JSON-shaped form of a resource record.

    Inputs:
      - rr: dnslib.RR of a handled kind.

    Outputs:
      - dict with keys ``name``, ``type``, ``TTL`` and ``data``.

    Raises:
      - UnsupportedRecordType for rr types outside the handled set.
    """

    kind = _require_kind(rr.rtype)
    return {
        "name": str(rr.rname),
        "type": int(kind),
        "TTL": int(rr.ttl),
        "data": encode_rdata(kind, rr.rdata),
    }

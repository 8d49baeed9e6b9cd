from __future__ import annotations

import logging
import os
import pathlib
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple

from dnslib import QTYPE, RCODE, RR

logger = logging.getLogger(__name__)


class ZoneAnswer(NamedTuple):
    """Brief: Result of a local zone lookup.

    Inputs:
      - rcode: dnslib RCODE value (NOERROR, NXDOMAIN or REFUSED).
      - answers: Records for the answer section.
      - authorities: Records for the authority section (SOA on negative answers).
    """

    rcode: int
    answers: List[RR]
    authorities: List[RR]


def _normalize_name(name: object) -> str:
    return str(name).rstrip(".").lower()


def _parse_qtype(raw: str) -> Optional[int]:
    """Brief: Parse a qtype given as a number or a mnemonic (e.g. ``AAAA``)."""

    if raw.isdigit():
        return int(raw)
    qtype_val = QTYPE.reverse.get(raw.upper())
    return int(qtype_val) if isinstance(qtype_val, int) else None


class ZoneStore:
    """
    Read-only authoritative store loaded from records files and inline entries.

    Each line has the form ``<domain>|<qtype>|<ttl>|<value>``; ``#`` starts a
    comment. Names that carry an SOA record become zone apexes, which enables
    NODATA/NXDOMAIN answers for names below them.

    Example use:
        >>> store = ZoneStore(records=["gateway.lan|A|300|192.168.1.1"])
        >>> store.lookup("gateway.lan", QTYPE.A).rcode == RCODE.NOERROR
        True
    """

    def __init__(
        self,
        file_paths: Optional[Iterable[str]] = None,
        records: Optional[Iterable[str]] = None,
    ) -> None:
        self.file_paths = self._normalize_paths(file_paths)
        self._inline_records = list(records or [])
        # Mapping of (domain, qtype) -> (ttl, ordered list of unique values)
        self.records: Dict[Tuple[str, int], Tuple[int, List[str]]] = {}
        self._rrsets: Dict[Tuple[str, int], List[RR]] = {}
        self._names: Dict[str, List[int]] = {}
        self._zone_soa: Dict[str, List[RR]] = {}
        self._load_records()

    @staticmethod
    def _normalize_paths(file_paths: Optional[Iterable[str]]) -> List[str]:
        """Brief: Expand user paths and de-duplicate while preserving order.

        Example:
          _normalize_paths(["/a", "/b", "/a"]) -> ["/a", "/b"]
          _normalize_paths(None) -> []
        """
        paths = [os.path.expanduser(str(p)) for p in (file_paths or [])]
        return list(dict.fromkeys(paths))

    def _load_records(self) -> None:
        """Brief: Read records sources and build the lookup tables.

        Inputs:
          - None (uses self.file_paths and inline records).

        Outputs:
          - None; populates self.records, self._rrsets, self._names and
            self._zone_soa.

        Raises:
          - ValueError on malformed lines.
          - OSError when a records file cannot be read.
        """
        mapping: Dict[Tuple[str, int], Tuple[int, List[str]]] = {}

        def _process_line(raw_line: str, source_label: str, lineno: int) -> None:
            line = raw_line.split("#", 1)[0].strip()
            if not line:
                return

            parts = [p.strip() for p in line.split("|")]
            if len(parts) != 4:
                raise ValueError(
                    f"Source {source_label} malformed line {lineno}: "
                    f"expected <domain>|<qtype>|<ttl>|<value>, got {raw_line!r}"
                )

            domain_raw, qtype_raw, ttl_raw, value = parts
            if not domain_raw or not qtype_raw or not ttl_raw or not value:
                raise ValueError(
                    f"Source {source_label} malformed line {lineno}: "
                    f"empty field in {raw_line!r}"
                )

            qtype_code = _parse_qtype(qtype_raw)
            if qtype_code is None:
                raise ValueError(
                    f"Source {source_label} malformed line {lineno}: "
                    f"unknown qtype {qtype_raw!r}"
                )

            try:
                ttl = int(ttl_raw)
            except ValueError as exc:
                raise ValueError(
                    f"Source {source_label} malformed line {lineno}: "
                    f"invalid ttl {ttl_raw!r}"
                ) from exc
            if ttl < 0:
                raise ValueError(
                    f"Source {source_label} malformed line {lineno}: "
                    f"negative ttl {ttl}"
                )

            key = (_normalize_name(domain_raw), qtype_code)
            # First TTL wins; later duplicate values are dropped.
            stored_ttl, values = mapping.get(key, (ttl, []))
            if value not in values:
                values.append(value)
            mapping[key] = (stored_ttl, values)

        for fp in self.file_paths:
            logger.debug("reading recordfile: %s", fp)
            records_path = pathlib.Path(fp)
            with records_path.open("r", encoding="utf-8") as f:
                for lineno, raw_line in enumerate(f, start=1):
                    _process_line(raw_line, str(records_path), lineno)

        for lineno, raw_line in enumerate(self._inline_records, start=1):
            _process_line(str(raw_line), "inline-config-records", lineno)

        rrsets: Dict[Tuple[str, int], List[RR]] = {}
        names: Dict[str, List[int]] = {}
        zone_soa: Dict[str, List[RR]] = {}
        for (domain, qtype_code), (ttl, values) in mapping.items():
            rrs = self._build_rrset(domain, qtype_code, ttl, values)
            if not rrs:
                continue
            rrsets[(domain, qtype_code)] = rrs
            names.setdefault(domain, []).append(qtype_code)
            if qtype_code == QTYPE.SOA:
                zone_soa[domain] = rrs

        self.records = mapping
        self._rrsets = rrsets
        self._names = names
        self._zone_soa = zone_soa
        logger.info(
            "Loaded %d local rrsets (%d zones)", len(self._rrsets), len(self._zone_soa)
        )

    @staticmethod
    def _build_rrset(domain: str, qtype_code: int, ttl: int, values: List[str]) -> List[RR]:
        owner = (domain or "") + "."
        type_name = QTYPE.get(qtype_code, str(qtype_code))
        rrs: List[RR] = []
        for value in values:
            zone_line = f"{owner} {ttl} IN {type_name} {value}"
            try:
                rrs.extend(RR.fromZone(zone_line))
            except Exception as exc:
                logger.warning(
                    "ZoneStore invalid value %r for %s %s: %s",
                    value,
                    domain,
                    type_name,
                    exc,
                )
        return rrs

    def _find_zone_for_name(self, name: str) -> Optional[str]:
        """Brief: Longest-matching zone apex covering ``name``, or None.

        Example:
          Given zones {"example.com", "sub.example.com"}:
            _find_zone_for_name("www.sub.example.com") -> "sub.example.com"
            _find_zone_for_name("example.org") -> None
        """
        best: Optional[str] = None
        for apex in self._zone_soa:
            if name == apex or name.endswith("." + apex):
                if best is None or len(apex) > len(best):
                    best = apex
        return best

    def lookup(self, name: object, qtype: int) -> ZoneAnswer:
        """Brief: Authoritative lookup by name and type.

        Inputs:
          - name: Queried domain name (str or dnslib DNSLabel).
          - qtype: Numeric DNS record type.

        Outputs:
          - ZoneAnswer:
            - NOERROR with the records on an exact (name, qtype) match.
            - NOERROR with the zone SOA in authority when the name exists in
              a local zone with other types only.
            - NXDOMAIN with the zone SOA when the name is inside a local zone
              but absent.
            - REFUSED when no local zone covers the name.
        """
        key_name = _normalize_name(name)
        qtype_int = int(qtype)

        rrs = self._rrsets.get((key_name, qtype_int))
        if rrs:
            logger.debug(
                "ZoneStore hit %s %s", key_name, QTYPE.get(qtype_int, qtype_int)
            )
            return ZoneAnswer(RCODE.NOERROR, list(rrs), [])

        apex = self._find_zone_for_name(key_name)
        if apex is None:
            return ZoneAnswer(RCODE.REFUSED, [], [])

        soa = list(self._zone_soa[apex])
        if key_name in self._names:
            return ZoneAnswer(RCODE.NOERROR, [], soa)
        return ZoneAnswer(RCODE.NXDOMAIN, [], soa)

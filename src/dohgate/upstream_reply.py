"""Typed model of the JSON DoH resolver reply.

Brief:
  The upstream speaks the ``/resolve?name=&type=`` JSON dialect popularized by
  Google Public DNS. Field names on the wire are fixed (``Status``, ``TC``,
  ``Answer`` ...); the models below expose them under Python attribute names
  while validating strictly, so a body with the wrong shape is rejected rather
  than coerced.
"""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field, StrictBool, StrictInt, StrictStr


class UpstreamQuestion(BaseModel):
    """Brief: One entry of the upstream ``Question`` array.

    Inputs:
      - name: Queried domain name as reported by the upstream.
      - type: Numeric DNS type code.
    """

    name: StrictStr
    qtype: StrictInt = Field(alias="type")

    class Config:
        populate_by_name = True


class UpstreamRecord(BaseModel):
    """Brief: One entry of the upstream ``Answer``/``Authority``/``Additional`` arrays.

    Inputs:
      - name: Owner name of the record.
      - type: Numeric DNS type code.
      - TTL: Unsigned 32-bit TTL in seconds.
      - data: Presentation-format rdata string (e.g. ``"10 mail.example.com."``).
    """

    name: StrictStr
    rtype: StrictInt = Field(alias="type")
    ttl: StrictInt = Field(alias="TTL", ge=0, le=0xFFFFFFFF)
    data: StrictStr

    class Config:
        populate_by_name = True


class UpstreamReply(BaseModel):
    """Brief: Complete upstream JSON reply.

    Inputs:
      - Status: DNS response code as an integer.
      - TC, RD, RA, AD, CD: Header flags as JSON booleans.
      - Question: Questions echoed by the upstream (default empty).
      - Answer, Authority, Additional: Record lists (default empty).

    Outputs:
      - UpstreamReply instance; extra keys such as ``Comment`` are ignored.
    """

    status: StrictInt = Field(alias="Status")
    tc: StrictBool = Field(alias="TC")
    rd: StrictBool = Field(alias="RD")
    ra: StrictBool = Field(alias="RA")
    ad: StrictBool = Field(alias="AD")
    cd: StrictBool = Field(alias="CD")
    questions: List[UpstreamQuestion] = Field(default_factory=list, alias="Question")
    answers: List[UpstreamRecord] = Field(default_factory=list, alias="Answer")
    authorities: List[UpstreamRecord] = Field(default_factory=list, alias="Authority")
    additionals: List[UpstreamRecord] = Field(
        default_factory=list, alias="Additional"
    )

    class Config:
        populate_by_name = True

"""Conversion between dnslib resource records and AnswerSet.

Brief:
  Every supported record kind has exactly one decoder (wire RR -> AnswerSet
  value) and one encoder (AnswerSet value -> dnslib rdata). Record kinds
  outside RecordKind have no entry and are skipped during extraction.

Inputs:
  - dnslib DNSRecord / RR objects and AnswerSet instances

Outputs:
  - AnswerSet (extraction) or DNSRecord responses (assembly)
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from dnslib import AAAA, CLASS, CNAME, MX, NS, PTR, RR, SRV, TXT, A, DNSRecord

from ..records import AnswerSet, MXRecord, RecordKind, SRVRecord

logger = logging.getLogger(__name__)

# TXT character-strings are limited to 255 octets each.
_TXT_CHUNK = 255


def _txt_text(rdata) -> str:
    parts = []
    for part in getattr(rdata, "data", []) or []:
        if isinstance(part, (bytes, bytearray)):
            parts.append(bytes(part).decode("utf-8", errors="surrogateescape"))
        else:
            parts.append(str(part))
    return "".join(parts)


def _txt_rdata(text: str) -> TXT:
    raw = text.encode("utf-8", errors="surrogateescape")
    chunks = [raw[i : i + _TXT_CHUNK] for i in range(0, len(raw), _TXT_CHUNK)] or [b""]
    return TXT(chunks)


_DECODERS: Dict[RecordKind, Callable[[Any], Any]] = {
    RecordKind.A: lambda rd: str(rd),
    RecordKind.AAAA: lambda rd: str(rd),
    RecordKind.MX: lambda rd: MXRecord(priority=int(rd.preference), target=str(rd.label)),
    RecordKind.TXT: _txt_text,
    RecordKind.CNAME: lambda rd: str(rd.label),
    RecordKind.NS: lambda rd: str(rd.label),
    RecordKind.PTR: lambda rd: str(rd.label),
    RecordKind.SRV: lambda rd: SRVRecord(
        priority=int(rd.priority),
        weight=int(rd.weight),
        port=int(rd.port),
        target=str(rd.target),
    ),
}

_ENCODERS: Dict[RecordKind, Callable[[Any], Any]] = {
    RecordKind.A: A,
    RecordKind.AAAA: AAAA,
    RecordKind.MX: lambda mx: MX(mx.target, mx.priority),
    RecordKind.TXT: _txt_rdata,
    RecordKind.CNAME: CNAME,
    RecordKind.NS: NS,
    RecordKind.PTR: PTR,
    RecordKind.SRV: lambda srv: SRV(srv.priority, srv.weight, srv.port, srv.target),
}


def extract_answer_set(response: DNSRecord) -> AnswerSet:
    """Brief: Collect the answer section of a response into an AnswerSet.

    Inputs:
      - response: Parsed upstream DNSRecord.

    Outputs:
      - AnswerSet with one entry per supported answer RR, in wire order.
        The last CNAME seen wins. Unsupported kinds are ignored.

    Example:
      >>> from dnslib import DNSRecord
      >>> reply = DNSRecord.question("example.com").reply()
      >>> reply.add_answer(*RR.fromZone("example.com. 60 A 192.0.2.1"))
      >>> extract_answer_set(reply).a
      ['192.0.2.1']
    """

    answers = AnswerSet()
    for rr in getattr(response, "rr", None) or []:
        kind = RecordKind.from_qtype(rr.rtype)
        if kind is None:
            continue
        answers.add(kind, _DECODERS[kind](rr.rdata))
    return answers


def build_answer_response(
    request: DNSRecord,
    answers: AnswerSet,
    kind: Optional[RecordKind],
    ttl: int,
) -> DNSRecord:
    """Brief: Build an authoritative reply carrying answers of one kind.

    Inputs:
      - request: Parsed client query; the reply echoes its id and question.
      - answers: AnswerSet to read values from.
      - kind: Record kind requested; None yields an empty answer section.
      - ttl: TTL applied to every answer record.

    Outputs:
      - DNSRecord with QR and AA set and zero or more answer RRs.

    Values that cannot be encoded (for example a malformed address) are
    logged and skipped.
    """

    reply = request.reply()
    reply.header.aa = 1
    if kind is None:
        return reply

    qname = request.q.qname
    encode = _ENCODERS[kind]
    for value in answers.values_for(kind):
        try:
            rdata = encode(value)
        except Exception as exc:
            logger.warning("Skipping unencodable %s value %r for %s: %s", kind.name, value, qname, exc)
            continue
        reply.add_answer(
            RR(rname=qname, rtype=int(kind), rclass=CLASS.IN, ttl=int(ttl), rdata=rdata)
        )
    return reply

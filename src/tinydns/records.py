"""Record data model and the static in-memory record store.

Brief:
  AnswerSet is the wire-format independent representation of all record data
  for one domain. It is used by the static record store, the answer cache and
  the upstream extraction path alike.

Inputs:
  - None

Outputs:
  - RecordKind, MXRecord, SRVRecord, AnswerSet, Query, RecordStore
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from dnslib import QTYPE


class RecordKind(enum.IntEnum):
    """Closed set of record types answered by the local tiers.

    Values are the DNS QTYPE codes so a kind can be compared directly with
    ``DNSQuestion.qtype``.
    """

    A = 1
    NS = 2
    CNAME = 5
    PTR = 12
    MX = 15
    TXT = 16
    AAAA = 28
    SRV = 33

    @classmethod
    def from_qtype(cls, qtype: int) -> Optional["RecordKind"]:
        """Brief: Map a numeric qtype to a RecordKind.

        Inputs:
          - qtype: Integer DNS query type.

        Outputs:
          - RecordKind or None when the type is not handled locally.
        """

        try:
            return cls(int(qtype))
        except ValueError:
            return None


def qtype_name(qtype: int) -> str:
    """Return the mnemonic for a numeric qtype (``TYPE65`` style when unknown)."""

    return QTYPE.get(qtype, f"TYPE{int(qtype)}")


@dataclass(frozen=True)
class MXRecord:
    priority: int
    target: str


@dataclass(frozen=True)
class SRVRecord:
    priority: int
    weight: int
    port: int
    target: str


@dataclass
class AnswerSet:
    """All record data known for one domain.

    Inputs (constructor fields):
      - a, aaaa: Address strings in answer order.
      - mx: MXRecord entries.
      - txt: TXT strings (one string per TXT record).
      - cname: Optional single CNAME target.
      - ns, ptr: Target names.
      - srv: SRVRecord entries.

    Outputs:
      - AnswerSet instance; every sequence defaults to empty.

    Example:
      >>> answers = AnswerSet(a=["10.0.0.5"])
      >>> answers.has(RecordKind.A), answers.has(RecordKind.AAAA)
      (True, False)
    """

    a: List[str] = field(default_factory=list)
    aaaa: List[str] = field(default_factory=list)
    mx: List[MXRecord] = field(default_factory=list)
    txt: List[str] = field(default_factory=list)
    cname: str = ""
    ns: List[str] = field(default_factory=list)
    ptr: List[str] = field(default_factory=list)
    srv: List[SRVRecord] = field(default_factory=list)

    def values_for(self, kind: RecordKind) -> List[Any]:
        """Brief: Return the ordered values stored for one record kind.

        Inputs:
          - kind: RecordKind to read.

        Outputs:
          - list: Values for that kind (a one-element list for a set CNAME).
        """

        if kind is RecordKind.CNAME:
            return [self.cname] if self.cname else []
        return list(getattr(self, kind.name.lower()))

    def has(self, kind: RecordKind) -> bool:
        return bool(self.values_for(kind))

    def add(self, kind: RecordKind, value: Any) -> None:
        """Brief: Append a value for the given kind.

        Inputs:
          - kind: RecordKind the value belongs to.
          - value: str for address/name kinds, MXRecord or SRVRecord otherwise.

        Outputs:
          - None. A CNAME replaces any previous CNAME target.
        """

        if kind is RecordKind.CNAME:
            self.cname = str(value)
        else:
            getattr(self, kind.name.lower()).append(value)

    def is_empty(self) -> bool:
        return not any(self.has(kind) for kind in RecordKind)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-compatible mapping."""

        return {
            "a": list(self.a),
            "aaaa": list(self.aaaa),
            "mx": [{"priority": m.priority, "target": m.target} for m in self.mx],
            "txt": list(self.txt),
            "cname": self.cname,
            "ns": list(self.ns),
            "ptr": list(self.ptr),
            "srv": [
                {
                    "priority": s.priority,
                    "weight": s.weight,
                    "port": s.port,
                    "target": s.target,
                }
                for s in self.srv
            ],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AnswerSet":
        """Brief: Build an AnswerSet from a mapping produced by to_dict().

        Inputs:
          - data: Mapping with optional a/aaaa/mx/txt/cname/ns/ptr/srv keys.

        Outputs:
          - AnswerSet instance.

        Raises:
          - TypeError/ValueError/KeyError when the mapping is malformed.
        """

        if not isinstance(data, Mapping):
            raise TypeError(f"answer set must be a mapping, got {type(data)!r}")

        def _strings(key: str) -> List[str]:
            raw = data.get(key) or []
            if isinstance(raw, str):
                raw = [raw]
            return [str(v) for v in raw]

        return cls(
            a=_strings("a"),
            aaaa=_strings("aaaa"),
            mx=[
                MXRecord(priority=int(m.get("priority", 10)), target=str(m["target"]))
                for m in data.get("mx") or []
            ],
            txt=_strings("txt"),
            cname=str(data.get("cname") or ""),
            ns=_strings("ns"),
            ptr=_strings("ptr"),
            srv=[
                SRVRecord(
                    priority=int(s.get("priority", 0)),
                    weight=int(s.get("weight", 0)),
                    port=int(s["port"]),
                    target=str(s["target"]),
                )
                for s in data.get("srv") or []
            ],
        )


@dataclass(frozen=True)
class Query:
    """One inbound question.

    Inputs (constructor fields):
      - domain: Query name in trailing-dot form, as received.
      - qtype: Numeric DNS query type.
      - client_ip: Address of the requesting client.
    """

    domain: str
    qtype: int
    client_ip: str = ""

    @property
    def lookup_name(self) -> str:
        """Domain with the trailing dot removed, used for rules and records."""

        return self.domain[:-1] if self.domain.endswith(".") else self.domain

    @property
    def type_name(self) -> str:
        return qtype_name(self.qtype)

    @property
    def kind(self) -> Optional[RecordKind]:
        return RecordKind.from_qtype(self.qtype)


WILDCARD_KEY = "*"


class RecordStore:
    """Static domain -> AnswerSet mapping populated once at startup.

    Keys are stored without a trailing dot. The literal key ``*`` acts as the
    wildcard entry consulted when no exact entry exists.
    """

    def __init__(self, records: Optional[Mapping[str, AnswerSet]] = None) -> None:
        normalized: Dict[str, AnswerSet] = {}
        for domain, answers in (records or {}).items():
            key = str(domain)
            if key.endswith(".") and key != ".":
                key = key[:-1]
            normalized[key] = answers
        self._records = normalized

    @classmethod
    def from_config(cls, raw: Optional[Mapping[str, Any]]) -> "RecordStore":
        """Build a store from the ``static_records`` config mapping."""

        return cls(
            {domain: AnswerSet.from_dict(data or {}) for domain, data in (raw or {}).items()}
        )

    def lookup_exact(self, domain: str) -> Optional[AnswerSet]:
        return self._records.get(domain)

    def lookup_wildcard(self) -> Optional[AnswerSet]:
        return self._records.get(WILDCARD_KEY)

    def lookup(self, domain: str) -> Optional[AnswerSet]:
        """Brief: Exact lookup falling back to the wildcard entry.

        Inputs:
          - domain: Name without trailing dot.

        Outputs:
          - AnswerSet or None when neither entry exists.
        """

        found = self.lookup_exact(domain)
        if found is not None:
            return found
        return self.lookup_wildcard()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, domain: object) -> bool:
        return domain in self._records

from __future__ import annotations

from ..records import AnswerSet, RecordKind

# Synthetic answers must never be cached downstream.
FALLBACK_TTL = 0


def synthesize(
    qtype: int, fallback_enabled: bool, default_a: str, default_aaaa: str
) -> AnswerSet:
    """Brief: Produce the answer used when every upstream attempt failed.

    Inputs:
      - qtype: Numeric query type.
      - fallback_enabled: Whether default answers may be synthesized.
      - default_a / default_aaaa: Configured default addresses.

    Outputs:
      - AnswerSet holding the single default address for an A or AAAA query
        when enabled and configured; an empty AnswerSet otherwise.
    """

    answers = AnswerSet()
    if not fallback_enabled:
        return answers

    kind = RecordKind.from_qtype(qtype)
    if kind is RecordKind.A and default_a:
        answers.add(kind, default_a)
    elif kind is RecordKind.AAAA and default_aaaa:
        answers.add(kind, default_aaaa)
    return answers

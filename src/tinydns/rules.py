"""Configuration routing rules and the rule matcher."""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Sequence

from pydantic import BaseModel, Field, validator

from .config.config_schema import ConfigError
from .records import AnswerSet, MXRecord, RecordKind, SRVRecord

logger = logging.getLogger(__name__)

ACTION_RESOLVE = "resolve"
ACTION_FORWARD = "forward"

DEFAULT_RULE_TTL = 300
DEFAULT_MX_PRIORITY = 10


class ConfigRule(BaseModel):
    """Brief: Typed model for one entry of the ``records`` config list.

    Inputs:
      - domain: Domain pattern (``*``, ``*.suffix`` or an exact name).
      - type: Record type mnemonic; upper-cased on load.
      - action: ``resolve`` (answer from this rule) or ``forward`` (always go
        upstream). Defaults to ``resolve``.
      - value / values: Single or multiple values for the answer.
      - ttl: Answer TTL in seconds; 0 or missing means 300.
      - priority: MX preference (defaults to 10 for MX) or SRV priority.
      - weight, port, target: SRV fields; target is also the MX exchange.

    Outputs:
      - ConfigRule instance with normalized fields.
    """

    domain: str
    type: str
    action: str = ACTION_RESOLVE
    value: str = ""
    values: List[str] = Field(default_factory=list)
    ttl: int = Field(default=DEFAULT_RULE_TTL, ge=0, le=0xFFFFFFFF)
    priority: int = Field(default=0, ge=0, le=0xFFFF)
    weight: int = Field(default=0, ge=0, le=0xFFFF)
    port: int = Field(default=0, ge=0, le=0xFFFF)
    target: str = ""

    class Config:
        extra = "forbid"

    @validator("domain", pre=True)
    def _strip_domain(cls, v):  # type: ignore[no-untyped-def]
        text = str(v or "").strip()
        if not text:
            raise ValueError("domain must be a non-empty string")
        if text.endswith(".") and text != ".":
            text = text[:-1]
        return text

    @validator("type", pre=True)
    def _upper_type(cls, v):  # type: ignore[no-untyped-def]
        return str(v or "").strip().upper()

    @validator("action", pre=True, always=True)
    def _normalize_action(cls, v):  # type: ignore[no-untyped-def]
        action = str(v or "").strip().lower() or ACTION_RESOLVE
        if action not in (ACTION_RESOLVE, ACTION_FORWARD):
            raise ValueError(f"invalid action {v!r}, must be 'resolve' or 'forward'")
        return action

    @validator("value", "target", pre=True)
    def _stringify(cls, v):  # type: ignore[no-untyped-def]
        return "" if v is None else str(v)

    @validator("values", pre=True)
    def _listify(cls, v):  # type: ignore[no-untyped-def]
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return [str(item) for item in v]

    @validator("ttl", pre=True, always=True)
    def _default_ttl(cls, v):  # type: ignore[no-untyped-def]
        return v or DEFAULT_RULE_TTL

    @validator("priority", pre=True, always=True)
    def _default_mx_priority(cls, v, values):  # type: ignore[no-untyped-def]
        if not v and values.get("type") == "MX":
            return DEFAULT_MX_PRIORITY
        return v or 0

    @property
    def is_forward(self) -> bool:
        return self.action == ACTION_FORWARD

    @property
    def kind(self) -> Optional[RecordKind]:
        return RecordKind.__members__.get(self.type)

    def answer_set(self) -> AnswerSet:
        """Brief: Build the answer data described by this rule.

        Inputs:
          - None.

        Outputs:
          - AnswerSet populated for this rule's type only. For A/AAAA the single
            ``value`` comes first, followed by every entry of ``values``.
        """

        answers = AnswerSet()
        kind = self.kind
        if kind in (RecordKind.A, RecordKind.AAAA):
            if self.value:
                answers.add(kind, self.value)
            for ip in self.values:
                answers.add(kind, ip)
        elif kind is RecordKind.MX:
            answers.add(kind, MXRecord(priority=self.priority, target=self.target))
        elif kind is RecordKind.SRV:
            answers.add(
                kind,
                SRVRecord(
                    priority=self.priority,
                    weight=self.weight,
                    port=self.port,
                    target=self.target,
                ),
            )
        elif kind is not None:
            answers.add(kind, self.value)
        return answers


def check_rule(rule: ConfigRule) -> None:
    """Brief: Enforce the per-type required fields of a ``resolve`` rule.

    Inputs:
      - rule: ConfigRule produced by the model validators.

    Outputs:
      - None.

    Raises:
      - ConfigError when a ``resolve`` rule lacks the fields its type needs or
        names a type that cannot be answered locally. ``forward`` rules may
        name any type.
    """

    if rule.is_forward:
        return

    kind = rule.kind
    if kind in (RecordKind.A, RecordKind.AAAA):
        if not rule.value and not rule.values:
            raise ConfigError(
                f"A/AAAA record for {rule.domain} with action 'resolve' must have 'value' or 'values' field"
            )
    elif kind in (RecordKind.MX, RecordKind.SRV):
        if not rule.target:
            raise ConfigError(
                f"{rule.type} record for {rule.domain} with action 'resolve' must have 'target' field"
            )
        if kind is RecordKind.SRV and not rule.port:
            raise ConfigError(
                f"SRV record for {rule.domain} with action 'resolve' must have 'port' field"
            )
    elif kind is not None:
        if not rule.value:
            raise ConfigError(
                f"{rule.type} record for {rule.domain} with action 'resolve' must have 'value' field"
            )
    else:
        raise ConfigError(f"unsupported record type '{rule.type}' for {rule.domain}")


def load_rules(raw_rules: Optional[Sequence[Mapping[str, Any]]]) -> List[ConfigRule]:
    """Brief: Validate the ``records`` config list into ConfigRule objects.

    Inputs:
      - raw_rules: Sequence of rule mappings in declaration order.

    Outputs:
      - list[ConfigRule] in the same order.

    Raises:
      - ConfigError naming the offending rule index on any validation failure.
    """

    rules: List[ConfigRule] = []
    for idx, raw in enumerate(raw_rules or []):
        if not isinstance(raw, Mapping):
            raise ConfigError(f"records[{idx}] must be a mapping")
        try:
            rule = ConfigRule(**dict(raw))
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"invalid records[{idx}]: {exc}") from exc
        check_rule(rule)
        rules.append(rule)
    return rules


def matches_domain(domain: str, pattern: str) -> bool:
    """Brief: Test a query name against a rule domain pattern.

    Inputs:
      - domain: Query name without trailing dot.
      - pattern: ``*``, ``*.suffix`` or an exact name.

    Outputs:
      - bool.

    Notes:
      - ``*.foo.com`` is a plain string-suffix test against ``.foo.com``, so it
        matches ``bar.foo.com`` but neither ``foo.com`` nor ``xfoo.com``.

    Example:
      >>> matches_domain("bar.foo.com", "*.foo.com")
      True
      >>> matches_domain("foo.com", "*.foo.com")
      False
    """

    if pattern == "*":
        return True
    if pattern.startswith("*."):
        return domain.endswith(pattern[1:])
    return domain == pattern


def match_rule(
    domain: str, qtype_name: str, rules: Sequence[ConfigRule]
) -> Optional[ConfigRule]:
    """Return the first rule in declaration order matching domain and type."""

    for rule in rules:
        if rule.type == qtype_name and matches_domain(domain, rule.domain):
            return rule
    return None

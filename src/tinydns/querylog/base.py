"""Resolution events and the observer hook that receives them."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

OPERATION_RESOLVE = "resolve"
OPERATION_FORWARD = "forward"
OPERATION_FALLBACK = "fallback"


@dataclass(frozen=True)
class ResolutionEvent:
    """One completed query, reported after its terminal resolution state.

    Inputs (constructor fields):
      - domain: Query name in trailing-dot form.
      - operation: ``resolve`` (answered locally), ``forward`` (upstream reply)
        or ``fallback`` (upstream failed).
      - record_type: Query type mnemonic.
      - client_ip: Requesting client address.
      - timestamp: Unix time the query arrived.
      - response_time: Seconds spent resolving.
      - source: Terminal tier name (``config``, ``memory``, ``wildcard``,
        ``cache``, ``upstream``, ``fallback`` or ``empty``).
      - upstream: Server that answered, when forwarded.
      - wildcard: True when a wildcard rule or record produced the answer.
      - message: Short human readable summary.
    """

    domain: str
    operation: str
    record_type: str
    client_ip: str
    timestamp: float
    response_time: float
    source: str
    upstream: Optional[str] = None
    wildcard: bool = False
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


QueryObserver = Callable[[ResolutionEvent], None]


def notify_observer(observer: Optional[QueryObserver], event: ResolutionEvent) -> None:
    """Brief: Deliver an event, logging and discarding observer failures.

    Inputs:
      - observer: Callable or None.
      - event: ResolutionEvent to deliver.

    Outputs:
      - None.
    """

    if observer is None:
        return
    try:
        observer(event)
    except Exception:
        logger.warning("Query observer failed for %s", event.domain, exc_info=True)

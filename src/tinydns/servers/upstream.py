"""Upstream forwarding with randomized server choice and fixed-delay retries.

Brief:
  UpstreamResolver sends a client query to one of the configured upstream
  servers per attempt, parses the reply and extracts its answers. The wire
  exchange itself is an injectable callable so tests can replace the network.

Inputs:
  - dnslib DNSRecord queries and ``host[:port]`` server strings

Outputs:
  - UpstreamResult on success; UpstreamError after the last failed attempt
"""

from __future__ import annotations

import functools
import ipaddress
import logging
import random
import time
from typing import Callable, NamedTuple, Optional, Sequence, Tuple

from dnslib import DNSRecord

from ..records import AnswerSet, qtype_name
from .responses import extract_answer_set
from .transports.tcp import tcp_query
from .transports.udp import udp_query

logger = logging.getLogger(__name__)

DEFAULT_DNS_PORT = 53
RETRY_DELAY = 0.1

ExchangeFn = Callable[[DNSRecord, str, float], bytes]


class UpstreamError(Exception):
    """
    Brief: Every upstream attempt for a query failed.

    Inputs:
      - message: Error description.
      - last_error: Exception raised by the final attempt, if any.
      - attempts: Number of attempts made.

    Outputs:
      - Exception instance.
    """

    def __init__(
        self, message: str, last_error: Optional[BaseException] = None, attempts: int = 0
    ) -> None:
        super().__init__(message)
        self.last_error = last_error
        self.attempts = attempts


class UpstreamResult(NamedTuple):
    """Successful upstream exchange.

    Fields:
      - answers: AnswerSet extracted from the answer section.
      - response: Parsed upstream reply.
      - wire: Raw reply bytes, returned to the client unchanged.
      - server: Server string that produced the reply.
      - attempts: Attempt number that succeeded (1-based).
    """

    answers: AnswerSet
    response: DNSRecord
    wire: bytes
    server: str
    attempts: int


def parse_server_address(server: str, default_port: int = DEFAULT_DNS_PORT) -> Tuple[str, int]:
    """Brief: Split a server string into host and port.

    Inputs:
      - server: ``host:port``, ``[v6]:port``, bare IPv4/IPv6 literal or host.
      - default_port: Port used when none is given.

    Outputs:
      - (host, port) tuple.

    Raises:
      - ValueError on an empty string, bad brackets or a non-numeric port.

    Example:
      >>> parse_server_address("[2606:4700::1111]:5353")
      ('2606:4700::1111', 5353)
      >>> parse_server_address("2001:db8::1")
      ('2001:db8::1', 53)
    """

    text = str(server or "").strip()
    if not text:
        raise ValueError("empty server address")

    if text.startswith("["):
        end = text.find("]")
        if end < 0:
            raise ValueError(f"unterminated IPv6 bracket in {server!r}")
        host = text[1:end]
        rest = text[end + 1 :]
        if not rest:
            return host, default_port
        if not rest.startswith(":"):
            raise ValueError(f"unexpected text after IPv6 address in {server!r}")
        return host, _parse_port(rest[1:], server)

    if text.count(":") > 1:
        # Unbracketed IPv6 literal, no port.
        ipaddress.IPv6Address(text)
        return text, default_port

    host, sep, port = text.partition(":")
    if not sep:
        return host, default_port
    return host, _parse_port(port, server)


def _parse_port(text: str, server: str) -> int:
    try:
        port = int(text)
    except ValueError:
        raise ValueError(f"invalid port in server address {server!r}") from None
    if not 0 <= port <= 0xFFFF:
        raise ValueError(f"port out of range in server address {server!r}")
    return port


def exchange(query: DNSRecord, server: str, timeout: float, *, net: str = "udp") -> bytes:
    """Brief: Send one query to one server and return the raw reply.

    Inputs:
      - query: DNSRecord to send.
      - server: Upstream address string.
      - timeout: Seconds allowed for the exchange.
      - net: ``udp`` or ``tcp``.

    Outputs:
      - bytes: Reply in wire format.

    Raises:
      - UDPError/TCPError on network failure, ValueError on a bad address.
    """

    host, port = parse_server_address(server)
    timeout_ms = max(1, int(float(timeout) * 1000))
    wire = query.pack()
    if net == "tcp":
        return tcp_query(host, port, wire, connect_timeout_ms=timeout_ms, read_timeout_ms=timeout_ms)
    return udp_query(host, port, wire, timeout_ms=timeout_ms)


class UpstreamResolver:
    """Forward queries upstream with up to ``max_retries`` attempts.

    Inputs:
      - exchange_fn: Callable ``(query, server, timeout) -> bytes``; defaults to
        ``exchange`` bound to ``net``.
      - net: Transport for the default exchange.
      - retry_delay: Seconds slept between attempts.
      - choose: Server picker, ``random.choice`` by default.

    Example:
      >>> resolver = UpstreamResolver(net="udp")
      >>> # resolver.resolve(DNSRecord.question("example.com"), ["1.1.1.1"], 2.0, 2)
    """

    def __init__(
        self,
        exchange_fn: Optional[ExchangeFn] = None,
        *,
        net: str = "udp",
        retry_delay: float = RETRY_DELAY,
        choose: Optional[Callable[[Sequence[str]], str]] = None,
    ) -> None:
        self.exchange_fn: ExchangeFn = exchange_fn or functools.partial(exchange, net=net)
        self.net = net
        self.retry_delay = float(retry_delay)
        self.choose = choose or random.choice

    def resolve(
        self,
        query: DNSRecord,
        servers: Sequence[str],
        timeout: float,
        max_retries: int,
    ) -> UpstreamResult:
        """Brief: Forward a query, retrying on failure.

        Inputs:
          - query: Client DNSRecord, sent with its original id.
          - servers: Candidate upstream servers; one is drawn per attempt.
          - timeout: Per-attempt timeout in seconds.
          - max_retries: Attempt count; values below 1 mean one attempt.

        Outputs:
          - UpstreamResult for the first attempt yielding a parseable reply
            whose id matches the query.

        Raises:
          - UpstreamError carrying the last observed error.
        """

        candidates = list(servers)
        if not candidates:
            raise UpstreamError("no upstream servers configured")

        attempts = max(1, int(max_retries))
        qname = str(query.q.qname)
        qtype = qtype_name(query.q.qtype)
        last_error: Optional[BaseException] = None

        for attempt in range(1, attempts + 1):
            server = self.choose(candidates)
            logger.info(
                "FORWARD: [%s] %s to upstream %s (attempt %d/%d)",
                qtype,
                qname,
                server,
                attempt,
                attempts,
            )
            try:
                wire = self.exchange_fn(query, server, timeout)
                if not wire:
                    raise UpstreamError(f"empty reply from {server}")
                response = DNSRecord.parse(wire)
                if response.header.id != query.header.id:
                    raise UpstreamError(
                        f"reply id {response.header.id} does not match query id {query.header.id}"
                    )
                answers = extract_answer_set(response)
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "ERROR: [%s] %s upstream %s failed on attempt %d/%d: %s",
                    qtype,
                    qname,
                    server,
                    attempt,
                    attempts,
                    exc,
                )
                if attempt < attempts:
                    time.sleep(self.retry_delay)
                continue

            return UpstreamResult(
                answers=answers, response=response, wire=bytes(wire), server=server, attempts=attempt
            )

        raise UpstreamError(
            f"all {attempts} upstream attempts failed for {qname}: {last_error}",
            last_error=last_error,
            attempts=attempts,
        )

"""Resolution pipeline and the socketserver-based DNS listener.

Brief:
  ResolutionPipeline decides, for one parsed query, which tier answers it:
  config rules, the static record store (exact then wildcard), the answer
  cache, the upstream resolver and finally the fallback synthesizer. The
  first tier that applies is terminal. DNSServer wires a pipeline into a
  threaded UDP or TCP socketserver.

Inputs:
  - Options, config rules, RecordStore, optional AnswerCache and observer

Outputs:
  - Wire-format responses for the listener handlers
"""

from __future__ import annotations

import enum
import logging
import socket
import socketserver
import time
from typing import NamedTuple, Optional, Sequence

from dnslib import RCODE, DNSRecord

from ..cache.answer_cache import AnswerCache
from ..options import Options
from ..querylog.base import (
    OPERATION_FALLBACK,
    OPERATION_FORWARD,
    OPERATION_RESOLVE,
    QueryObserver,
    ResolutionEvent,
    notify_observer,
)
from ..records import AnswerSet, Query, RecordStore
from ..rules import ConfigRule, match_rule
from .fallback import FALLBACK_TTL, synthesize
from .responses import build_answer_response
from .tcp_server import DNSTCPHandler
from .udp_server import DNSUDPHandler
from .upstream import UpstreamError, UpstreamResolver, parse_server_address

logger = logging.getLogger(__name__)

# TTL for answers served from the record store or the answer cache.
LOCAL_ANSWER_TTL = 60


class Source(str, enum.Enum):
    """Tier that produced a response."""

    CONFIG = "config"
    MEMORY = "memory"
    WILDCARD = "wildcard"
    CACHE = "cache"
    UPSTREAM = "upstream"
    FALLBACK = "fallback"
    EMPTY = "empty"


class Resolution(NamedTuple):
    """Outcome of resolving one query.

    Fields:
      - response: Reply as a DNSRecord.
      - wire: Reply bytes to send; for upstream answers these are the
        upstream bytes unchanged.
      - source: Terminal tier.
      - answers: AnswerSet used to build or extracted from the reply.
      - upstream: Answering server for upstream replies.
      - wildcard: True when a wildcard rule or record matched.
      - message: Short summary for logs and observers.
    """

    response: DNSRecord
    wire: bytes
    source: Source
    answers: AnswerSet
    upstream: Optional[str] = None
    wildcard: bool = False
    message: str = ""


class ResolutionPipeline:
    """Per-query tiered resolution.

    Inputs (constructor):
      - options: Immutable Options snapshot.
      - rules: Ordered ConfigRule sequence.
      - records: Static RecordStore (empty when None).
      - cache: AnswerCache; ignored when ``options.disk_cache`` is False.
      - resolver: UpstreamResolver; a default one using ``options.net`` is
        built when None.
      - observer: Optional callable receiving a ResolutionEvent per query.

    Example:
      >>> from tinydns.options import Options
      >>> pipeline = ResolutionPipeline(Options(disk_cache=False))
      >>> # wire = pipeline.handle(query_bytes, "127.0.0.1")
    """

    def __init__(
        self,
        options: Options,
        rules: Sequence[ConfigRule] = (),
        records: Optional[RecordStore] = None,
        cache: Optional[AnswerCache] = None,
        resolver: Optional[UpstreamResolver] = None,
        observer: Optional[QueryObserver] = None,
    ) -> None:
        self.options = options
        self.rules = tuple(rules)
        self.records = records if records is not None else RecordStore()
        self.cache = cache if options.disk_cache else None
        self.resolver = resolver or UpstreamResolver(net=options.net)
        self.observer = observer

    def handle(self, data: bytes, client_ip: str = "") -> Optional[bytes]:
        """Brief: Resolve one wire-format query.

        Inputs:
          - data: Query bytes as received.
          - client_ip: Requesting client address.

        Outputs:
          - Reply bytes, or None when the query is malformed and must be
            dropped. Unexpected failures yield a SERVFAIL reply.
        """

        try:
            request = DNSRecord.parse(data)
        except Exception as exc:
            logger.debug("Dropping malformed query from %s: %s", client_ip, exc)
            return None
        if not request.questions:
            logger.debug("Dropping query without a question from %s", client_ip)
            return None

        try:
            return self.resolve(request, client_ip).wire
        except Exception:
            logger.exception("Unhandled error resolving %s from %s", request.q.qname, client_ip)
            reply = request.reply()
            reply.header.rcode = RCODE.SERVFAIL
            return reply.pack()

    def resolve(self, request: DNSRecord, client_ip: str = "") -> Resolution:
        """Brief: Walk the resolution tiers for the first question of request.

        Inputs:
          - request: Parsed query with at least one question.
          - client_ip: Requesting client address.

        Outputs:
          - Resolution for the first applicable tier. The observer, if any,
            is notified afterwards.
        """

        started = time.time()
        question = request.q
        query = Query(domain=str(question.qname), qtype=int(question.qtype), client_ip=client_ip)
        logger.info("REQUEST: [%s] %s from %s", query.type_name, query.domain, client_ip or "-")

        result = self._resolve_tiers(request, query)

        elapsed = time.time() - started
        logger.info(
            "RESPONSE: [%s] %s from %s: %s (%.1f ms)",
            query.type_name,
            query.domain,
            result.source.value,
            result.message,
            elapsed * 1000.0,
        )
        notify_observer(
            self.observer,
            ResolutionEvent(
                domain=query.domain,
                operation=_operation_for(result.source),
                record_type=query.type_name,
                client_ip=client_ip,
                timestamp=started,
                response_time=elapsed,
                source=result.source.value,
                upstream=result.upstream,
                wildcard=result.wildcard,
                message=result.message,
            ),
        )
        return result

    def _resolve_tiers(self, request: DNSRecord, query: Query) -> Resolution:
        kind = query.kind
        if kind is None:
            return self._forward(request, query, wildcard=False)

        name = query.lookup_name
        rule = match_rule(name, query.type_name, self.rules)
        if rule is not None:
            wildcard = rule.domain.startswith("*")
            if rule.is_forward:
                return self._forward(request, query, wildcard=wildcard)
            return self._local(
                request,
                query,
                rule.answer_set(),
                rule.ttl,
                Source.CONFIG,
                wildcard=wildcard,
                message=f"config rule {rule.domain}",
            )

        exact = self.records.lookup_exact(name)
        if exact is not None and exact.has(kind):
            return self._local(
                request, query, exact, LOCAL_ANSWER_TTL, Source.MEMORY, message="static record"
            )

        wild = self.records.lookup_wildcard()
        if wild is not None and wild.has(kind):
            return self._local(
                request,
                query,
                wild,
                LOCAL_ANSWER_TTL,
                Source.WILDCARD,
                wildcard=True,
                message="wildcard record",
            )

        if self.cache is not None:
            cached = self.cache.get(query.domain, query.type_name)
            if cached is not None and cached.has(kind):
                logger.debug("CACHE: hit for [%s] %s", query.type_name, query.domain)
                return self._local(
                    request, query, cached, LOCAL_ANSWER_TTL, Source.CACHE, message="cache hit"
                )

        return self._forward(request, query, wildcard=False)

    def _local(
        self,
        request: DNSRecord,
        query: Query,
        answers: AnswerSet,
        ttl: int,
        source: Source,
        *,
        wildcard: bool = False,
        message: str = "",
    ) -> Resolution:
        response = build_answer_response(request, answers, query.kind, ttl)
        return Resolution(
            response=response,
            wire=response.pack(),
            source=source,
            answers=answers,
            wildcard=wildcard,
            message=message,
        )

    def _forward(self, request: DNSRecord, query: Query, *, wildcard: bool) -> Resolution:
        opts = self.options
        try:
            result = self.resolver.resolve(
                request, opts.upstream_servers, opts.upstream_timeout, opts.upstream_retries
            )
        except UpstreamError as exc:
            return self._fallback(request, query, str(exc))

        if self.cache is not None and result.response.rr:
            if self.cache.put(query.domain, query.type_name, result.answers):
                logger.debug("CACHE: stored [%s] %s", query.type_name, query.domain)

        return Resolution(
            response=result.response,
            wire=result.wire,
            source=Source.UPSTREAM,
            answers=result.answers,
            upstream=result.server,
            wildcard=wildcard,
            message=f"upstream {result.server}",
        )

    def _fallback(self, request: DNSRecord, query: Query, reason: str) -> Resolution:
        opts = self.options
        answers = synthesize(query.qtype, opts.fallback_response, opts.default_a, opts.default_aaaa)
        source = Source.EMPTY if answers.is_empty() else Source.FALLBACK
        logger.warning(
            "ERROR: [%s] %s answered with %s response: %s",
            query.type_name,
            query.domain,
            source.value,
            reason,
        )
        response = build_answer_response(request, answers, query.kind, FALLBACK_TTL)
        return Resolution(
            response=response,
            wire=response.pack(),
            source=source,
            answers=answers,
            message=reason,
        )


def _operation_for(source: Source) -> str:
    if source is Source.UPSTREAM:
        return OPERATION_FORWARD
    if source in (Source.FALLBACK, Source.EMPTY):
        return OPERATION_FALLBACK
    return OPERATION_RESOLVE


class _UDPServer(socketserver.ThreadingUDPServer):
    allow_reuse_address = True
    daemon_threads = True


class _UDPServer6(_UDPServer):
    address_family = socket.AF_INET6


class _TCPServer(socketserver.ThreadingTCPServer):
    allow_reuse_address = True
    daemon_threads = True


class _TCPServer6(_TCPServer):
    address_family = socket.AF_INET6


class DNSServer:
    """Threaded UDP or TCP DNS listener bound to a ResolutionPipeline.

    Inputs (constructor):
      - pipeline: ResolutionPipeline answering every query.
      - listen_address: ``host:port`` or ``[v6]:port`` to bind.
      - net: ``udp`` or ``tcp``.

    Example:
      >>> import threading
      >>> server = DNSServer(pipeline, "127.0.0.1:5353")
      >>> threading.Thread(target=server.serve_forever, daemon=True).start()
      >>> server.stop()
    """

    def __init__(self, pipeline: ResolutionPipeline, listen_address: str, net: str = "udp") -> None:
        host, port = parse_server_address(listen_address)
        ipv6 = ":" in host
        if net == "tcp":
            server_cls = _TCPServer6 if ipv6 else _TCPServer
            handler = DNSTCPHandler
        elif net == "udp":
            server_cls = _UDPServer6 if ipv6 else _UDPServer
            handler = DNSUDPHandler
        else:
            raise ValueError(f"unsupported listener network {net!r}")

        self.net = net
        self.pipeline = pipeline
        self.server = server_cls((host, port), handler)
        self.server.pipeline = pipeline  # type: ignore[attr-defined]

    @property
    def address(self):
        """Bound (host, port); useful when listening on port 0."""

        return self.server.server_address[:2]

    def serve_forever(self) -> None:
        logger.info("Listening on %s:%d (%s)", self.address[0], self.address[1], self.net)
        try:
            self.server.serve_forever()
        finally:
            self.server.server_close()

    def stop(self) -> None:
        """Stop serve_forever() from another thread and release the socket."""

        self.server.shutdown()
        self.server.server_close()

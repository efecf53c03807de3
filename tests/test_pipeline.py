"""
Brief: Tests for ResolutionPipeline tier precedence, caching and fallback.

Inputs:
  - None

Outputs:
  - None
"""

import logging
import time
from unittest.mock import Mock

from dnslib import QTYPE, RCODE, RR, TXT, A, DNSRecord

from tinydns.cache import AnswerCache, KeyValueStore
from tinydns.options import Options
from tinydns.querylog import ResolutionEvent
from tinydns.records import AnswerSet, RecordStore
from tinydns.rules import load_rules
from tinydns.servers.server import LOCAL_ANSWER_TTL, ResolutionPipeline, Source
from tinydns.servers.transports.udp import UDPError
from tinydns.servers.upstream import UpstreamResolver


class _DictStore(KeyValueStore):
    def __init__(self):
        self.data = {}
        self.writes = 0

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.writes += 1
        self.data[key] = value

    def close(self):
        pass


class _Upstream:
    """Scripted exchange: optional failures, then a reply with the given A records."""

    def __init__(self, ips=("192.0.2.1",), failures=0, rcode=0):
        self.ips = ips
        self.failures = failures
        self.rcode = rcode
        self.calls = 0
        self.last_wire = None

    def __call__(self, query, server, timeout):
        self.calls += 1
        if self.calls <= self.failures:
            raise UDPError("timed out")
        reply = query.reply()
        reply.header.aa = 0
        reply.header.rcode = self.rcode
        for ip in self.ips:
            reply.add_answer(RR(query.q.qname, QTYPE.A, ttl=42, rdata=A(ip)))
        self.last_wire = reply.pack()
        return self.last_wire


def _options(**overrides):
    base = dict(
        upstream_servers=("10.0.0.53:53",),
        upstream_timeout=0.5,
        upstream_retries=3,
        disk_cache=True,
    )
    base.update(overrides)
    return Options(**base)


def _records():
    return RecordStore.from_config(
        {
            "svc.local": {"a": ["10.0.0.5"]},
            "*": {"a": ["10.0.0.1"]},
        }
    )


def _pipeline(upstream=None, rules=(), records=None, cache=None, observer=None, **opts):
    upstream = upstream or _Upstream()
    return ResolutionPipeline(
        _options(**opts),
        rules=rules,
        records=records if records is not None else RecordStore(),
        cache=cache,
        resolver=UpstreamResolver(upstream),
        observer=observer,
    )


def test_resolve_rule_bypasses_store_and_cache():
    """
    Brief: A matching resolve rule answers without touching store, cache or upstream.

    Inputs:
      - Rule for *.corp.example, spy store and cache

    Outputs:
      - None: Asserts rule answer and untouched collaborators
    """
    rules = load_rules([{"domain": "*.corp.example", "type": "A", "value": "10.1.0.1", "ttl": 120}])
    records = Mock(spec=RecordStore)
    cache = Mock(spec=AnswerCache)
    upstream = _Upstream()
    pipeline = _pipeline(upstream, rules=rules, records=records, cache=cache)

    result = pipeline.resolve(DNSRecord.question("db.corp.example", "A"), "127.0.0.1")

    assert result.source is Source.CONFIG
    assert result.wildcard is True
    assert [str(rr.rdata) for rr in result.response.rr] == ["10.1.0.1"]
    assert result.response.rr[0].ttl == 120
    assert result.response.header.aa == 1
    assert records.method_calls == []
    assert cache.method_calls == []
    assert upstream.calls == 0


def test_forward_rule_skips_store_and_cache_reads():
    rules = load_rules([{"domain": "svc.local", "type": "A", "action": "forward"}])
    cache = Mock(spec=AnswerCache)
    cache.put.return_value = True
    records = Mock(spec=RecordStore)
    upstream = _Upstream(ips=("203.0.113.9",))
    pipeline = _pipeline(upstream, rules=rules, records=records, cache=cache)

    result = pipeline.resolve(DNSRecord.question("svc.local", "A"))

    assert result.source is Source.UPSTREAM
    assert result.answers.a == ["203.0.113.9"]
    assert upstream.calls == 1
    records.lookup_exact.assert_not_called()
    records.lookup_wildcard.assert_not_called()
    cache.get.assert_not_called()


def test_rule_for_other_type_does_not_match():
    rules = load_rules([{"domain": "svc.local", "type": "AAAA", "value": "fd00::5"}])
    pipeline = _pipeline(rules=rules, records=_records())
    result = pipeline.resolve(DNSRecord.question("svc.local", "A"))
    assert result.source is Source.MEMORY


def test_memory_exact_and_wildcard_answers():
    pipeline = _pipeline(records=_records())

    exact = pipeline.resolve(DNSRecord.question("svc.local", "A"))
    assert exact.source is Source.MEMORY
    assert [str(rr.rdata) for rr in exact.response.rr] == ["10.0.0.5"]
    assert exact.response.rr[0].ttl == LOCAL_ANSWER_TTL

    wild = pipeline.resolve(DNSRecord.question("anything.else", "A"))
    assert wild.source is Source.WILDCARD
    assert wild.wildcard is True
    assert [str(rr.rdata) for rr in wild.response.rr] == ["10.0.0.1"]
    assert wild.response.header.aa == 1


def test_memory_entry_without_requested_type_falls_through():
    """
    Brief: Store entries lacking data for the query type do not terminate.

    Inputs:
      - Store with A-only entries, AAAA query

    Outputs:
      - None: Asserts the upstream answered
    """
    upstream = _Upstream(ips=())
    pipeline = _pipeline(upstream, records=_records())
    result = pipeline.resolve(DNSRecord.question("svc.local", "AAAA"))
    assert result.source is Source.UPSTREAM
    assert upstream.calls == 1


def test_upstream_retry_then_single_cache_write_and_cache_hit():
    """
    Brief: Two failures then success writes the cache once; the next query hits it.

    Inputs:
      - Scripted upstream failing twice, dict-backed answer cache

    Outputs:
      - None: Asserts retry delays, verbatim upstream bytes, one write, then a cache hit
    """
    store = _DictStore()
    cache = AnswerCache(store)
    upstream = _Upstream(ips=("192.0.2.10",), failures=2)
    pipeline = _pipeline(upstream, cache=cache)

    started = time.monotonic()
    first = pipeline.resolve(DNSRecord.question("example.com", "A"))
    elapsed = time.monotonic() - started

    assert elapsed >= 0.2
    assert upstream.calls == 3
    assert first.source is Source.UPSTREAM
    assert first.wire == upstream.last_wire
    assert first.upstream == "10.0.0.53:53"
    assert store.writes == 1
    assert cache.get("example.com.", "A") == AnswerSet(a=["192.0.2.10"])

    second = pipeline.resolve(DNSRecord.question("example.com", "A"))
    assert second.source is Source.CACHE
    assert [str(rr.rdata) for rr in second.response.rr] == ["192.0.2.10"]
    assert second.response.rr[0].ttl == LOCAL_ANSWER_TTL
    assert upstream.calls == 3
    assert store.writes == 1


def test_binary_txt_survives_cache_round_trip():
    """
    Brief: Non-UTF-8 TXT bytes from upstream are served unchanged from the cache.

    Inputs:
      - Upstream replying with a TXT string holding 0xff and NUL bytes

    Outputs:
      - None: Asserts identical TXT bytes on the upstream and cached answers
    """
    payload = b"\xff\x00bin"

    def _txt_upstream(query, server, timeout):
        reply = query.reply()
        reply.add_answer(RR(query.q.qname, QTYPE.TXT, ttl=30, rdata=TXT([payload])))
        return reply.pack()

    store = _DictStore()
    pipeline = _pipeline(_txt_upstream, cache=AnswerCache(store))

    first = pipeline.resolve(DNSRecord.question("bin.example", "TXT"))
    assert first.source is Source.UPSTREAM
    assert store.writes == 1

    second = pipeline.resolve(DNSRecord.question("bin.example", "TXT"))
    assert second.source is Source.CACHE
    cached = DNSRecord.parse(second.response.pack())
    assert [bytes(part) for part in cached.rr[0].rdata.data] == [payload]


def test_cache_disabled_never_reads_or_writes():
    cache = Mock(spec=AnswerCache)
    upstream = _Upstream()
    pipeline = _pipeline(upstream, cache=cache, disk_cache=False)
    pipeline.resolve(DNSRecord.question("example.com", "A"))
    pipeline.resolve(DNSRecord.question("example.com", "A"))
    assert cache.method_calls == []
    assert upstream.calls == 2


def test_answerless_upstream_reply_is_not_cached():
    store = _DictStore()
    upstream = _Upstream(ips=(), rcode=RCODE.NXDOMAIN)
    pipeline = _pipeline(upstream, cache=AnswerCache(store))

    result = pipeline.resolve(DNSRecord.question("missing.example", "A"))

    assert result.source is Source.UPSTREAM
    assert result.response.header.rcode == RCODE.NXDOMAIN
    assert store.writes == 0


def test_fallback_a_and_empty_aaaa():
    """
    Brief: With every attempt failing, A gets the default and AAAA gets nothing.

    Inputs:
      - Always-failing upstream, fallback enabled with only default_a

    Outputs:
      - None: Asserts TTL 0 synthetic answer, AA set, nothing cached
    """
    store = _DictStore()
    upstream = _Upstream(failures=100)
    pipeline = _pipeline(
        upstream,
        cache=AnswerCache(store),
        fallback_response=True,
        default_a="127.0.0.1",
        upstream_retries=2,
    )

    a = pipeline.resolve(DNSRecord.question("down.example", "A"))
    assert a.source is Source.FALLBACK
    assert [str(rr.rdata) for rr in a.response.rr] == ["127.0.0.1"]
    assert a.response.rr[0].ttl == 0
    assert a.response.header.aa == 1

    aaaa = pipeline.resolve(DNSRecord.question("down.example", "AAAA"))
    assert aaaa.source is Source.EMPTY
    assert aaaa.response.rr == []
    assert aaaa.response.header.aa == 1
    assert aaaa.response.header.rcode == RCODE.NOERROR

    assert upstream.calls == 4
    assert store.writes == 0


def test_fallback_disabled_gives_empty_answer():
    pipeline = _pipeline(_Upstream(failures=100), default_a="127.0.0.1", upstream_retries=1)
    result = pipeline.resolve(DNSRecord.question("down.example", "A"))
    assert result.source is Source.EMPTY
    assert result.response.rr == []


def test_unsupported_type_goes_upstream_even_with_wildcard_and_cache():
    store = _DictStore()
    cache = AnswerCache(store)
    cache.put("svc.local.", "SOA", AnswerSet(a=["10.9.9.9"]))
    upstream = _Upstream(ips=())
    pipeline = _pipeline(upstream, records=_records(), cache=cache)

    result = pipeline.resolve(DNSRecord.question("svc.local", "SOA"))

    assert result.source is Source.UPSTREAM
    assert upstream.calls == 1


def test_handle_drops_malformed_and_questionless_queries():
    pipeline = _pipeline()
    assert pipeline.handle(b"\x00", "127.0.0.1") is None

    no_question = DNSRecord()
    assert pipeline.handle(no_question.pack(), "127.0.0.1") is None


def test_handle_returns_wire_reply():
    pipeline = _pipeline(records=_records())
    query = DNSRecord.question("svc.local", "A")
    wire = pipeline.handle(query.pack(), "192.0.2.50")
    reply = DNSRecord.parse(wire)
    assert reply.header.id == query.header.id
    assert [str(rr.rdata) for rr in reply.rr] == ["10.0.0.5"]


def test_handle_returns_servfail_on_internal_error(caplog):
    caplog.set_level(logging.ERROR)
    pipeline = _pipeline()
    pipeline.resolver = Mock()
    pipeline.resolver.resolve.side_effect = RuntimeError("boom")

    query = DNSRecord.question("example.com", "A")
    reply = DNSRecord.parse(pipeline.handle(query.pack(), "127.0.0.1"))

    assert reply.header.id == query.header.id
    assert reply.header.rcode == RCODE.SERVFAIL
    assert "Unhandled error resolving" in caplog.text


def test_observer_receives_event():
    events = []
    pipeline = _pipeline(records=_records(), observer=events.append)
    pipeline.resolve(DNSRecord.question("svc.local", "A"), "192.0.2.50")

    assert len(events) == 1
    event = events[0]
    assert isinstance(event, ResolutionEvent)
    assert event.domain == "svc.local."
    assert event.record_type == "A"
    assert event.client_ip == "192.0.2.50"
    assert event.source == "memory"
    assert event.operation == "resolve"
    assert event.response_time >= 0


def test_observer_failure_is_ignored(caplog):
    caplog.set_level(logging.WARNING)

    def _broken(event):
        raise RuntimeError("observer down")

    pipeline = _pipeline(records=_records(), observer=_broken)
    result = pipeline.resolve(DNSRecord.question("svc.local", "A"))
    assert result.source is Source.MEMORY
    assert "Query observer failed" in caplog.text

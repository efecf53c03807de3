from __future__ import annotations

import argparse
import dataclasses
import logging
import signal
import sqlite3
import threading
from typing import Any, Callable, Dict, List, Optional

from .cache import AnswerCache, HybridStore
from .config.config_parser import LoadedConfig, build_loaded_config, load_config
from .config.config_schema import ConfigError
from .config.logging_config import init_logging
from .options import DEFAULT_OPTIONS, Options
from .public_servers import get_public_dns_servers
from .querylog import JsonQueryLog
from .servers import DNSServer, ResolutionPipeline, UpstreamResolver


def build_arg_parser() -> argparse.ArgumentParser:
    """Return the command line parser; flags override config file values."""

    parser = argparse.ArgumentParser(
        prog="tinydns", description="Caching, policy-driven DNS responder"
    )
    parser.add_argument("--config", default=None, help="Path to YAML config")
    parser.add_argument("--listen", default=None, help="Listen address, host:port")
    parser.add_argument("--net", choices=("udp", "tcp"), default=None, help="Listener network")
    parser.add_argument(
        "--disk",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Enable the persistent answer cache",
    )
    parser.add_argument(
        "--upstream",
        action="append",
        default=None,
        metavar="SERVER",
        help="Upstream server host[:port]; repeat for several",
    )
    parser.add_argument(
        "--provider", default=None, help="Public resolver set (cloudflare, google, quad9, ...)"
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=("debug", "info", "warn", "warning", "error", "crit", "critical"),
        help="Log level",
    )
    return parser


def apply_cli_overrides(options: Options, args: argparse.Namespace) -> Options:
    """
    Brief: Overlay explicitly given CLI flags onto an Options snapshot.

    Inputs:
      - options: Options after the config file was applied.
      - args: Parsed namespace from build_arg_parser().

    Outputs:
      - Options: New snapshot.

    Raises:
      - ConfigError for an unknown --provider.
    """

    changes: Dict[str, Any] = {}
    if args.listen:
        changes["listen_address"] = args.listen
    if args.net:
        changes["net"] = args.net
    if args.disk is not None:
        changes["disk_cache"] = bool(args.disk)
    if args.upstream:
        changes["upstream_servers"] = tuple(args.upstream)
    elif args.provider:
        servers = get_public_dns_servers(args.provider)
        if servers is None:
            raise ConfigError(f"unknown upstream provider {args.provider!r}")
        changes["upstream_servers"] = tuple(servers)
    return dataclasses.replace(options, **changes)


def load_runtime_config(args: argparse.Namespace) -> LoadedConfig:
    """Load the optional config file and apply CLI overrides on top of it."""

    if args.config:
        loaded = load_config(args.config, base=DEFAULT_OPTIONS)
    else:
        loaded = build_loaded_config({}, base=DEFAULT_OPTIONS)
    options = apply_cli_overrides(loaded.options, args)

    logging_cfg = dict(loaded.logging)
    if args.log_level:
        logging_cfg["level"] = args.log_level
    return loaded._replace(options=options, logging=logging_cfg)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Entry point: parse arguments, load config, serve until SIGTERM/SIGINT.

    Inputs:
      - argv: Argument list (defaults to sys.argv[1:]).

    Outputs:
      - int: 0 on clean shutdown, 1 on configuration or startup failure.

    Example use:
        >>> import threading
        >>> t = threading.Thread(
        ...     target=main, args=(["--listen", "127.0.0.1:5353", "--no-disk"],), daemon=True
        ... )
        >>> t.start()
    """

    args = build_arg_parser().parse_args(argv)

    try:
        loaded = load_runtime_config(args)
    except ConfigError as exc:
        print(str(exc))
        return 1

    init_logging(loaded.logging)
    logger = logging.getLogger("tinydns.main")
    options = loaded.options
    if options.config_file:
        logger.info("Loaded config from %s", options.config_file)

    closers: List[Callable[[], None]] = []
    cache: Optional[AnswerCache] = None
    observer: Optional[JsonQueryLog] = None
    server: Optional[DNSServer] = None
    exit_code = 0

    try:
        if options.disk_cache:
            store = HybridStore(path=options.cache_path, memory_size=options.cache_memory_size)
            cache = AnswerCache(store)
            closers.append(cache.close)
            logger.info("Answer cache stored at %s", store.db_path)

        json_file = (loaded.querylog or {}).get("json_file")
        if json_file:
            observer = JsonQueryLog(json_file)
            closers.append(observer.close)

        pipeline = ResolutionPipeline(
            options,
            rules=loaded.rules,
            records=loaded.records,
            cache=cache,
            resolver=UpstreamResolver(net=options.net),
            observer=observer,
        )
        server = DNSServer(pipeline, options.listen_address, options.net)
    except (OSError, ValueError, sqlite3.Error) as exc:
        logger.error("Failed to start: %s", exc)
        _close_all(closers, logger)
        return 1

    logger.info(
        "Upstream servers: %s (timeout %.3fs, retries %d)",
        ", ".join(options.upstream_servers),
        options.upstream_timeout,
        options.upstream_retries,
    )

    shutdown_event = threading.Event()

    def _request_shutdown(signum, _frame) -> None:
        logger.info("Received %s, shutting down", signal.Signals(signum).name)
        shutdown_event.set()

    previous_handlers = {}
    for signum in (signal.SIGTERM, signal.SIGINT):
        try:
            previous_handlers[signum] = signal.signal(signum, _request_shutdown)
        except ValueError:
            # Not on the main thread (e.g. embedded in tests).
            logger.debug("Could not install handler for %s", signal.Signals(signum).name)

    serve_error: List[BaseException] = []

    def _serve() -> None:
        try:
            server.serve_forever()
        except Exception as exc:
            serve_error.append(exc)
            shutdown_event.set()

    server_thread = threading.Thread(target=_serve, name="tinydns-server", daemon=True)
    server_thread.start()

    try:
        while not shutdown_event.wait(1.0):
            pass
    except KeyboardInterrupt:
        logger.info("Received interrupt, shutting down")
    finally:
        try:
            server.stop()
        except OSError:
            logger.exception("Error while stopping DNS server")
        server_thread.join(timeout=5.0)
        _close_all(closers, logger)
        for signum, handler in previous_handlers.items():
            signal.signal(signum, handler)

    if serve_error:
        logger.error("DNS server stopped unexpectedly: %s", serve_error[0])
        exit_code = 1
    logger.info("tinydns stopped")
    return exit_code


def _close_all(closers: List[Callable[[], None]], logger: logging.Logger) -> None:
    for close in reversed(closers):
        try:
            close()
        except Exception:
            logger.exception("Error while closing %r", close)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

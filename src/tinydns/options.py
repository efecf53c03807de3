"""Immutable runtime options shared by the server and the resolution pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class Options:
    """Brief: Snapshot of every runtime knob, fixed for the server lifetime.

    Inputs (constructor fields):
      - listen_address: ``host:port`` the listener binds to.
      - net: Listener and upstream transport, ``udp`` or ``tcp``.
      - upstream_servers: Upstream ``host[:port]`` strings; one is picked at
        random per attempt.
      - disk_cache: Enables the persistent answer cache tier.
      - cache_path: Directory for the on-disk cache; None uses a temporary
        directory removed on shutdown.
      - cache_memory_size: Entry count of the in-memory cache tier.
      - upstream_timeout: Per-attempt upstream timeout in seconds.
      - upstream_retries: Attempt count (values below 1 behave as 1).
      - fallback_response: Synthesize default A/AAAA answers when every
        upstream attempt fails.
      - default_a / default_aaaa: Addresses used by the fallback; empty
        disables the fallback for that type.
      - config_file: Source config path, informational only.

    Outputs:
      - Options instance.
    """

    listen_address: str = "127.0.0.1:53"
    net: str = "udp"
    upstream_servers: Tuple[str, ...] = ("1.1.1.1:53",)
    disk_cache: bool = True
    cache_path: Optional[str] = None
    cache_memory_size: int = 4096
    upstream_timeout: float = 2.0
    upstream_retries: int = 2
    fallback_response: bool = False
    default_a: str = ""
    default_aaaa: str = ""
    config_file: Optional[str] = None


DEFAULT_OPTIONS = Options()

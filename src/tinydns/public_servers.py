"""Catalogue of well-known public recursive resolvers.

Entries without an explicit port use 53.
"""

from __future__ import annotations

from typing import Dict, List, Optional

PUBLIC_DNS_SERVERS: Dict[str, List[str]] = {
    "cloudflare": [
        "1.1.1.1:53",
        "1.0.0.1:53",
        "2606:4700:4700::1111",
        "2606:4700:4700::1001",
    ],
    "google": [
        "8.8.8.8:53",
        "8.8.4.4:53",
        "2001:4860:4860::8888",
        "2001:4860:4860::8844",
    ],
    "quad9": [
        "9.9.9.9:53",
        "149.112.112.112:53",
        "2620:fe::fe",
        "2620:fe::9",
    ],
    "opendns": [
        "208.67.222.222:53",
        "208.67.220.220:53",
        "2620:119:35::35",
        "2620:119:53::53",
    ],
    "alidns": [
        "223.5.5.5:53",
        "223.6.6.6:53",
        "2400:3200::1",
        "2400:3200:baba::1",
    ],
    "dnspod": [
        "119.29.29.29:53",
        "119.28.28.28:53",
    ],
    "baidu": [
        "180.76.76.76:53",
    ],
    "cnnic": [
        "1.2.4.8:53",
        "210.2.4.8:53",
    ],
}


def get_public_dns_servers(provider: str) -> Optional[List[str]]:
    """Brief: Return the server list for a provider name.

    Inputs:
      - provider: Provider key, case-insensitive (e.g. ``cloudflare``).

    Outputs:
      - list[str] copy of the provider's servers, or None when unknown.

    Example:
      >>> get_public_dns_servers("baidu")
      ['180.76.76.76:53']
    """

    servers = PUBLIC_DNS_SERVERS.get(str(provider).strip().lower())
    if servers is None:
        return None
    return list(servers)


def get_all_public_dns_servers() -> List[str]:
    """Return every catalogued server, grouped by provider in catalogue order."""

    out: List[str] = []
    for servers in PUBLIC_DNS_SERVERS.values():
        out.extend(servers)
    return out

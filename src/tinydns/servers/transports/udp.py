import socket


class UDPError(Exception):
    """
    Brief: DNS-over-UDP transport error.

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass


def _family_for(host: str) -> int:
    return socket.AF_INET6 if ":" in host else socket.AF_INET


def udp_query(
    host: str,
    port: int,
    query: bytes,
    *,
    timeout_ms: int = 2000,
    max_size: int = 65535,
) -> bytes:
    """
    Brief: Perform a single UDP DNS exchange.

    Inputs:
    - host: upstream resolver IPv4/IPv6 literal or hostname
    - port: upstream UDP port
    - query: wire-format DNS query bytes
    - timeout_ms: socket timeout in milliseconds
    - max_size: receive buffer size

    Outputs:
    - bytes: first datagram received from the upstream

    Example:
        >>> try:
        ...     udp_query('127.0.0.1', 53, b'\x00\x01', timeout_ms=10)
        ... except UDPError:
        ...     pass
    """
    try:
        s = socket.socket(_family_for(host), socket.SOCK_DGRAM)
        try:
            s.settimeout(timeout_ms / 1000.0)
            s.sendto(query, (host, int(port)))
            data, _ = s.recvfrom(int(max_size))
            return data
        finally:
            s.close()
    except OSError as e:
        raise UDPError(f"UDP error talking to {host}:{port}: {e}") from e

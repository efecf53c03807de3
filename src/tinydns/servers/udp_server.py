import logging
import socketserver

logger = logging.getLogger(__name__)


class DNSUDPHandler(socketserver.BaseRequestHandler):
    """
    Handles one UDP DNS datagram.

    The owning server exposes the ResolutionPipeline as ``server.pipeline``;
    this handler only moves bytes between the socket and the pipeline.

    Example use:
        Installed by DNSServer for ``net: udp``; not instantiated directly.
    """

    def handle(self) -> None:
        data, sock = self.request
        client_ip = str(self.client_address[0])
        wire = self.server.pipeline.handle(data, client_ip)  # type: ignore[attr-defined]
        if not wire:
            return
        try:
            sock.sendto(wire, self.client_address)
        except OSError as exc:
            logger.warning("Failed to send UDP response to %s: %s", client_ip, exc)

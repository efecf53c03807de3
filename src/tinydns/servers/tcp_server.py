import logging
import socketserver

from .transports.tcp import TCPError, read_frame

logger = logging.getLogger(__name__)

# Seconds an idle client connection is kept open between queries.
IDLE_TIMEOUT = 10.0


class DNSTCPHandler(socketserver.BaseRequestHandler):
    """
    Handles one DNS-over-TCP client connection (RFC 7766 framing).

    Queries on the connection are answered in order until the client closes
    it, sends a truncated frame or stays idle past IDLE_TIMEOUT.
    """

    def handle(self) -> None:
        sock = self.request
        client_ip = str(self.client_address[0])
        sock.settimeout(IDLE_TIMEOUT)
        pipeline = self.server.pipeline  # type: ignore[attr-defined]

        while True:
            try:
                data = read_frame(sock)
            except (OSError, TCPError) as exc:
                logger.debug("Closing TCP connection from %s: %s", client_ip, exc)
                return
            if not data:
                return

            wire = pipeline.handle(data, client_ip)
            if not wire:
                continue
            try:
                sock.sendall(len(wire).to_bytes(2, "big") + wire)
            except OSError as exc:
                logger.warning("Failed to send TCP response to %s: %s", client_ip, exc)
                return

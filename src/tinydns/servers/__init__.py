from .server import DNSServer, Resolution, ResolutionPipeline, Source
from .upstream import UpstreamError, UpstreamResolver, UpstreamResult, parse_server_address

__all__ = [
    "DNSServer",
    "Resolution",
    "ResolutionPipeline",
    "Source",
    "UpstreamError",
    "UpstreamResolver",
    "UpstreamResult",
    "parse_server_address",
]

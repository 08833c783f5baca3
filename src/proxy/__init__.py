"""condagate gatekeeper proxy package.

This package provides the HTTP front end that serves filtered conda repodata
for configured channel/subdirs and forwards allowlisted package-file
downloads to the upstream conda host.
"""

from .request_parser import RequestParser, ParsedRequest, RequestKind
from .upstream import UpstreamClient
from .server import GatekeeperProxyServer, ProxyConfig

__all__ = [
    "RequestParser",
    "ParsedRequest",
    "RequestKind",
    "UpstreamClient",
    "GatekeeperProxyServer",
    "ProxyConfig",
]

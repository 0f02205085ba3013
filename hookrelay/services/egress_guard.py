"""
Outbound URL policy.

Rejects loopback, link-local and private-range targets before any request
is made. Deployments can append policies to ``EgressGuard.policies``; each
receives the URL and the verdict so far and returns the new verdict.
"""
import ipaddress
import logging
import socket
from typing import Callable, List, Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

EgressPolicy = Callable[[str, bool], bool]

BLOCKED_HOSTS = {"localhost", "127.0.0.1", "0.0.0.0", "::1"}

BLOCKED_NETWORKS = [
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("169.254.0.0/16"),
    ipaddress.ip_network("0.0.0.0/8"),
]


class EgressGuard:
    """SSRF guard applied to every outbound URL."""

    def __init__(self, policies: Optional[List[EgressPolicy]] = None):
        self.policies: List[EgressPolicy] = list(policies or [])

    def is_external(self, url: str) -> bool:
        allowed = self._check(url)
        for policy in self.policies:
            allowed = bool(policy(url, allowed))
        if not allowed:
            logger.warning(f"Blocked outbound request to {url}")
        return allowed

    def _check(self, url: str) -> bool:
        try:
            host = urlparse(url).hostname
        except ValueError:
            return False
        if not host:
            return False

        if host.lower() in BLOCKED_HOSTS:
            return False

        try:
            address = ipaddress.ip_address(socket.gethostbyname(host))
        except (socket.gaierror, UnicodeError, ValueError):
            # Unresolvable: the transport will fail on its own
            return True

        return not any(address in network for network in BLOCKED_NETWORKS)


egress_guard = EgressGuard()

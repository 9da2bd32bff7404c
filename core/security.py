"""
Acting-user resolution for imgpaste.
====================================

The wiki front end authenticates users and forwards the login name in a
request header (``X-Remote-User`` by default). That header is only honored
when the request arrives from one of the configured trusted proxies;
anything else is treated as anonymous.

Usage:
    from core.security import get_acting_user

    @router.post("/ajax")
    async def upload(user: str = Depends(get_acting_user)):
        ...
"""

from __future__ import annotations

import ipaddress
import logging
from typing import Iterable, List, Union

from fastapi import Request

from config import config

logger = logging.getLogger(__name__)

IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


def parse_trusted_networks(entries: Iterable[str]) -> List[IPNetwork]:
    """Turn CIDR strings into networks, skipping blanks, comments and invalid entries."""
    networks: List[IPNetwork] = []
    for raw in entries:
        entry = (raw or "").strip()
        if not entry or entry.startswith("#"):
            continue
        try:
            networks.append(ipaddress.ip_network(entry, strict=False))
        except ValueError:
            logger.warning("Invalid trusted proxy CIDR ignored: %s", entry)
    return networks


TRUSTED_PROXY_NETWORKS = parse_trusted_networks(config.ACL.trusted_proxies)


def is_trusted_proxy(client_ip: str | None) -> bool:
    if not client_ip:
        return False
    try:
        address = ipaddress.ip_address(client_ip)
    except ValueError:
        logger.debug("Client address %r is not an IP address", client_ip)
        return False
    return any(address in network for network in TRUSTED_PROXY_NETWORKS)


def get_acting_user(request: Request) -> str:
    """
    FastAPI dependency returning the authenticated user name.

    Returns:
        The forwarded user name, or an empty string for anonymous requests
    """
    header = config.ACL.user_header
    user = (request.headers.get(header) or "").strip()
    if not user:
        return ""

    source = request.client.host if request.client else None
    if not is_trusted_proxy(source):
        logger.warning("Ignoring %s header from untrusted source %s", header, source)
        return ""
    return user

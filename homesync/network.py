"""
Local address detection for the push listener.
"""

import logging
import socket

logger = logging.getLogger(__name__)


def get_ip_address() -> str:
    """
    Find the first non-loopback IPv4 address of this host.

    Falls back to 0.0.0.0 (all interfaces) when none can be found.
    """
    try:
        hostname = socket.gethostname()
        for ip in socket.gethostbyname_ex(hostname)[2]:
            if not ip.startswith("127."):
                return ip
    except OSError:
        pass

    # Find the route IP (connect on UDP sends nothing)
    try:
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        s.settimeout(0.1)
        try:
            s.connect(("8.8.8.8", 80))
            route_ip = s.getsockname()[0]
        finally:
            s.close()
        if route_ip and not route_ip.startswith("127."):
            return route_ip
    except OSError:
        pass

    logger.debug("No local IPv4 address found, listening on all interfaces")
    return "0.0.0.0"

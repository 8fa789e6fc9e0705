"""Bridge URL resolution from the configured host string."""

from __future__ import annotations

TAILNET_DOMAIN = ".ts.net"


def is_ip_literal(host: str) -> bool:
    """Hosts containing a digit and a dot are treated as LAN addresses."""
    return "." in host and any(char.isdigit() for char in host)


def is_tailnet_name(host: str, tailnet_suffix: str) -> bool:
    return host.endswith(tailnet_suffix) or host.endswith(TAILNET_DOMAIN)


def resolve_bridge_url(host: str, *, port: int, tailnet_suffix: str) -> str:
    """Return the WebSocket URL for ``host``.

    ``192.168.1.5`` becomes ``ws://192.168.1.5:<port>``, a name already in
    the tailnet (``vnc.<tailnet>.ts.net``) is used verbatim over ``wss://``
    and a short name such as ``vnc`` gets ``tailnet_suffix`` appended.
    """
    # Tailnet names carry digits and dots too, so they are matched first.
    if is_tailnet_name(host, tailnet_suffix):
        return f"wss://{host}"
    if is_ip_literal(host):
        return f"ws://{host}:{port}"
    return f"wss://{host}{tailnet_suffix}"

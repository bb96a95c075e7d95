"""Process-wide gateway slot.

``create_app`` installs the gateway here; route handlers read it back, so the
routes never import the application module.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .gateway import GrokGateway

# Installed by create_app; tests swap it through GatewayHarness
gateway: Optional["GrokGateway"] = None


def set_gateway(gateway_instance: Optional["GrokGateway"]) -> None:
    """Install (or clear, with None) the gateway serving requests."""
    global gateway
    gateway = gateway_instance


def get_gateway() -> "GrokGateway":
    """Return the installed gateway.

    Raises:
        RuntimeError: no gateway has been installed yet.
    """
    if gateway is None:
        raise RuntimeError("No gateway installed; create_app() must run before routes are served")
    return gateway

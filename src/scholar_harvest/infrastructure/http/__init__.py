"""HTTP access to arbitrary web pages."""

from .gateway import GatewayResponse, NetworkGateway, strip_tracking_scripts

__all__ = ["GatewayResponse", "NetworkGateway", "strip_tracking_scripts"]

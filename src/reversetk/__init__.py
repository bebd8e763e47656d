"""
reversetk — gateway payload interception and capability negotiation.

    from reversetk.gateway import CapabilityNegotiator, GatewayInterceptor
"""

__version__ = "0.1.0"

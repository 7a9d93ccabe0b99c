"""
Credential Caching
Single-flight refreshing cache and the payment gateway token specialisation
"""
from throttlekit.credentials.expiry import parse_expiry
from throttlekit.credentials.gateway import GatewayClient, GatewayTokenFetcher, build_gateway_token_cache
from throttlekit.credentials.models import CachedCredential, FetchedCredential
from throttlekit.credentials.single_flight import InFlightRegistry, SingleFlightCache

__all__ = [
    "CachedCredential",
    "FetchedCredential",
    "GatewayClient",
    "GatewayTokenFetcher",
    "InFlightRegistry",
    "SingleFlightCache",
    "build_gateway_token_cache",
    "parse_expiry",
]

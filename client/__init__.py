from client.api_client import ApiError, StorefrontClient
from client.pipeline import RefreshFailed, RequestContext
from client.session import ClientSession
from client.singleflight import SingleFlight

__all__ = [
    "ApiError",
    "ClientSession",
    "RefreshFailed",
    "RequestContext",
    "SingleFlight",
    "StorefrontClient",
]

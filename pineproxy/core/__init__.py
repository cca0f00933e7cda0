"""
PineProxy Core Module
"""

from pineproxy.core.connection import Connection, ConnectionResult, ConnectionState
from pineproxy.core.interceptors import Interceptor, InterceptorLoader, InterceptorPipeline
from pineproxy.core.models import Request, Response
from pineproxy.core.proxy import ProxyServer
from pineproxy.core.reader import ProtocolError

__all__ = [
    "Connection",
    "ConnectionResult",
    "ConnectionState",
    "Interceptor",
    "InterceptorLoader",
    "InterceptorPipeline",
    "ProtocolError",
    "ProxyServer",
    "Request",
    "Response",
]

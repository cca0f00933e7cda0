"""
PineProxy — Intercepting HTTP Proxy
===================================
Forwards plain HTTP traffic between a client and an origin server and lets an
ordered chain of interceptors watch requests and rewrite textual responses.
"""

__version__ = "1.0.0"
__app_name__ = "PineProxy"

"""
hack_title — Example PineProxy module
=====================================
Prefixes the ``<title>`` of every HTML page with a marker. The proxy updates
``Content-Length`` for the longer body on its own.

Place this file in ~/.config/pineproxy/modules/ to load it.
"""

import logging

from pineproxy.core.interceptors import Interceptor
from pineproxy.core.models import truncate_url

logger = logging.getLogger("pineproxy")

MARKER = b" !!! HACKED !!! "


class HackTitle(Interceptor):
    name = "hack_title"
    description = "Inject a marker into HTML page titles"

    def on_request(self, request, response):
        if response.content_type != "text/html":
            return
        if b"<title>" not in response.body:
            return
        logger.warning(f"Hacking {truncate_url(request.url)} title tag")
        response.body = response.body.replace(b"<title>", b"<title>" + MARKER, 1)


def register():
    return HackTitle()

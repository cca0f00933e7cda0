"""
dump_posts — Example PineProxy module
=====================================
Logs every POST request, captured body included, when its response passes
through the proxy.

Place this file in ~/.config/pineproxy/modules/ to load it.
"""

import logging

from pineproxy.core.interceptors import Interceptor

logger = logging.getLogger("pineproxy")


class DumpPosts(Interceptor):
    name = "dump_posts"
    description = "Log POST requests with their bodies"

    def on_request(self, request, response):
        if request.is_post:
            logger.warning(f"POST REQUEST:\n\n{request.to_text()}\n")


def register():
    return DumpPosts()

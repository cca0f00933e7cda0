"""
PineProxy Interceptors
======================
Interceptors see every textual response after its body has been fully
buffered and before it is written back to the client. They may read the
request (e.g. to log it) and rewrite ``response.body`` or
``response.header_lines``. The engine fixes up ``Content-Length`` afterwards.

Interceptors live in Python files placed in the modules directory
(~/.config/pineproxy/modules/). Each file defines a ``register()`` function
returning one :class:`Interceptor` or a list of them.

Minimal Interceptor Example
---------------------------
::

    from pineproxy.core.interceptors import Interceptor

    class HackTitle(Interceptor):
        name = "hack_title"

        def on_request(self, request, response):
            if response.content_type == "text/html":
                response.body = response.body.replace(b"<title>", b"<title>HACKED ", 1)

    def register():
        return HackTitle()

Interceptors run on the connection's own thread. One that keeps state across
calls must guard it itself; the engine does not serialize invocations.
"""

from __future__ import annotations

import importlib.util
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional

from pineproxy.config import MODULES_DIR


# ── Interceptor Contract ─────────────────────────────────────────────────────

class Interceptor:
    """Base class for request/response interceptors."""

    name: str = ""
    description: str = ""

    def enabled(self) -> bool:
        """Disabled interceptors are skipped for that call."""
        return True

    def on_request(self, request, response) -> None:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.display_name}>"

    @property
    def display_name(self) -> str:
        return self.name or type(self).__name__


# ── Pipeline ─────────────────────────────────────────────────────────────────

class InterceptorPipeline:
    """
    Ordered chain of interceptors.

    Each enabled interceptor is called in registration order and sees the
    mutations of the ones before it. Exceptions are not caught here; they
    abort the owning connection.
    """

    def __init__(self, interceptors: Optional[Iterable[Any]] = None):
        self._interceptors: List[Any] = []
        for interceptor in interceptors or ():
            self.add(interceptor)

    def add(self, interceptor: Any) -> None:
        for hook in ("enabled", "on_request"):
            if not callable(getattr(interceptor, hook, None)):
                raise TypeError(
                    f"{type(interceptor).__name__} has no callable {hook}()"
                )
        self._interceptors.append(interceptor)

    def run(self, request, response) -> int:
        """Invoke every enabled interceptor. Returns how many ran."""
        invoked = 0
        for interceptor in self._interceptors:
            if not interceptor.enabled():
                continue
            interceptor.on_request(request, response)
            invoked += 1
        return invoked

    def __iter__(self) -> Iterator[Any]:
        return iter(self._interceptors)

    def __len__(self) -> int:
        return len(self._interceptors)


# ── Loader ───────────────────────────────────────────────────────────────────

class InterceptorLoader:
    """
    Loads interceptors from a directory of Python files.

    Usage::

        loader = InterceptorLoader(Path("modules"))
        loader.discover()
        pipeline = loader.pipeline()
    """

    def __init__(self, modules_dir: Optional[Path] = None, logger: Optional[logging.Logger] = None):
        self.modules_dir = modules_dir or MODULES_DIR
        self.logger = logger or logging.getLogger(__name__)
        self.interceptors: List[Interceptor] = []
        self._load_errors: List[Dict[str, str]] = []

    def discover(self) -> int:
        """
        Load every ``*.py`` file of the modules directory, in name order.

        Returns:
            Number of interceptors loaded.
        """
        self.interceptors = []
        self._load_errors = []

        if not self.modules_dir.exists():
            return 0

        for path in sorted(self.modules_dir.glob("*.py")):
            if path.name.startswith("_"):
                continue
            try:
                loaded = self._load_module_file(path)
            except Exception as e:
                self._load_errors.append({"file": path.name, "error": str(e)})
                self.logger.warning(f"Failed to load module {path.name}: {e}")
                continue
            for interceptor in loaded:
                self.logger.debug(f"Loaded interceptor {interceptor.display_name} from {path.name}")
            self.interceptors.extend(loaded)

        return len(self.interceptors)

    def _load_module_file(self, path: Path) -> List[Interceptor]:
        module_name = f"pineproxy_module_{path.stem}"
        spec = importlib.util.spec_from_file_location(module_name, str(path))
        if spec is None or spec.loader is None:
            raise ImportError(f"Cannot create module spec for {path}")

        module = importlib.util.module_from_spec(spec)

        # Registered so imports inside the module resolve
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            sys.modules.pop(module_name, None)
            raise ImportError(f"Error executing {path.name}: {e}") from e

        register = getattr(module, "register", None)
        if not callable(register):
            raise ValueError(f"{path.name}: no register() function found")

        result = register()
        loaded = list(result) if isinstance(result, (list, tuple)) else [result]
        for item in loaded:
            if not isinstance(item, Interceptor):
                raise TypeError(
                    f"{path.name}: register() must return Interceptor instances, "
                    f"got {type(item).__name__}"
                )
        return loaded

    def pipeline(self) -> InterceptorPipeline:
        return InterceptorPipeline(self.interceptors)

    def get_load_errors(self) -> List[Dict[str, str]]:
        """Return any errors from the last discover() call."""
        return self._load_errors.copy()

    def list_interceptors(self) -> List[Dict[str, Any]]:
        return [
            {
                "name": i.display_name,
                "description": i.description,
                "enabled": i.enabled(),
            }
            for i in self.interceptors
        ]

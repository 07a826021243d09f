"""
Handler Loader.

Resolves the handler locator (the `_HANDLER` environment variable) and
imports the user's module lazily, on the first invocation rather than at
process start.

Locator format:
    api/hello.py            file path, attribute defaults to "handler"
    api/hello.py:app        file path with explicit attribute
    myapp.handlers:index    dotted module name with explicit attribute

The loader is a single-slot cell: once a handler has been loaded, every
later call to load() returns the same object and the module's top-level code
never runs again. A failed load leaves the cell empty, so the next
invocation tries again.
"""

from __future__ import annotations

import hashlib
import importlib
import importlib.util
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType

from .errors import HandlerLoadError
from .handlers import ProbingHandler

logger = logging.getLogger(__name__)

DEFAULT_ATTRIBUTE = "handler"


@dataclass(frozen=True, slots=True)
class HandlerLocation:
    """Where the user handler lives."""

    target: str
    attribute: str = DEFAULT_ATTRIBUTE

    @property
    def is_path(self) -> bool:
        return "/" in self.target or "\\" in self.target or self.target.endswith(".py")

    @classmethod
    def parse(cls, value: str, default_attribute: str = DEFAULT_ATTRIBUTE) -> HandlerLocation:
        """
        Parse a locator string.

        Raises:
            ValueError: If the locator is empty or malformed
        """
        value = (value or "").strip()
        if not value:
            raise ValueError("Handler locator is empty")

        target, sep, attribute = value.rpartition(":")
        if not sep:
            target, attribute = value, default_attribute
        # Windows drive letters ("C:\\app\\handler.py") are not attributes
        elif "/" in attribute or "\\" in attribute:
            target, attribute = value, default_attribute

        if not target:
            raise ValueError(f"Handler locator has no module: {value!r}")
        if not attribute.isidentifier():
            raise ValueError(f"Handler attribute is not an identifier: {attribute!r}")
        return cls(target=target, attribute=attribute)

    def __str__(self) -> str:
        return f"{self.target}:{self.attribute}"


def import_target(target: str, base_dir: str | Path | None = None) -> ModuleType:
    """
    Import a module by file path or dotted name.

    File paths are resolved against base_dir, which is also put on sys.path
    so handler modules can import their siblings.

    Raises:
        HandlerLoadError: On any failure to locate or execute the module
    """
    root = Path(base_dir) if base_dir else Path.cwd()
    if str(root) not in sys.path:
        sys.path.insert(0, str(root))

    is_path = "/" in target or "\\" in target or target.endswith(".py")
    if not is_path:
        try:
            return importlib.import_module(target)
        except (Exception, SystemExit) as e:
            raise HandlerLoadError(
                f"Failed to import {target}: {type(e).__name__}: {e}", target
            ) from e

    path = Path(target)
    if not path.is_absolute():
        path = root / path
    if not path.suffix and path.with_suffix(".py").is_file():
        path = path.with_suffix(".py")
    if not path.is_file():
        raise HandlerLoadError(f"Handler file not found: {path}", target)

    digest = hashlib.sha1(str(path.resolve()).encode("utf-8")).hexdigest()[:8]
    module_name = f"_faasbridge_{path.stem}_{digest}"

    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise HandlerLoadError(f"Could not create module spec for: {path}", target)

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except (Exception, SystemExit) as e:
        sys.modules.pop(module_name, None)
        raise HandlerLoadError(
            f"Failed to load {path}: {type(e).__name__}: {e}", target
        ) from e
    return module


class HandlerLoader:
    """
    Once-initialized holder of the user handler.

    Only one invocation is ever in flight, so the cell needs no locking.
    """

    def __init__(self, location: HandlerLocation, *, base_dir: str | Path | None = None):
        self.location = location
        self.base_dir = base_dir
        self.load_attempts = 0
        self._module: ModuleType | None = None
        self._handler: ProbingHandler | None = None

    @property
    def loaded(self) -> bool:
        return self._handler is not None

    def load(self) -> ProbingHandler:
        """
        Return the handler, importing its module on first use.

        Raises:
            HandlerLoadError: If the module cannot be imported or does not
                expose a callable handler attribute
        """
        if self._handler is not None:
            return self._handler

        self.load_attempts += 1
        if self._module is None:
            logger.info(f"[loader] Importing handler module {self.location.target}")
            self._module = import_target(self.location.target, self.base_dir)

        func = getattr(self._module, self.location.attribute, None)
        if func is None:
            raise HandlerLoadError(
                f"Module {self.location.target} has no attribute "
                f"{self.location.attribute!r}",
                str(self.location),
            )
        if not callable(func):
            raise HandlerLoadError(
                f"{self.location} is a {type(func).__name__}, not a callable",
                str(self.location),
            )

        self._handler = ProbingHandler(func, name=str(self.location))
        logger.info(f"[loader] Loaded handler {self.location}")
        return self._handler

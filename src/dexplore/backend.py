#!/usr/bin/env python3
# Interfaces of the external search/decompiler engines and the loader that plugs one in
from __future__ import annotations
import importlib, inspect, os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional, Protocol
from .constants import BACKEND_ENV
from .errors import BackendError


class ReferencePool(Protocol):
    strings: List[str]
    types: List[str]
    fields: List[str]
    methods: List[str]

    def contains(self, value: str) -> bool: ...


class ItemResult(Protocol):
    """A matched class or method; str() gives its display form."""
    clazz: str
    reference_pool: ReferencePool


class Archive(Protocol):
    def on_class_result(self, dex_filter: Any, class_filter: Any,
                        callback: Callable[[ItemResult], bool]) -> None: ...

    def on_method_result(self, dex_filter: Any, class_filter: Any, method_filter: Any,
                         callback: Callable[[ItemResult], bool]) -> None: ...

    def has_class(self, name: str) -> bool: ...

    def resource_id(self, class_name: str, res_name: str) -> Optional[int]: ...


class ClassEntry(Protocol):
    full_name: str
    raw_name: str
    name: str
    alias_path: str

    @property
    def code(self) -> str: ...

    @property
    def smali(self) -> str: ...


class ResourceEntry(Protocol):
    name: str

    def save(self, directory: Path) -> None: ...


class Decompiler(Protocol):
    def __enter__(self) -> "Decompiler": ...

    def __exit__(self, *exc_info) -> Optional[bool]: ...

    def init(self) -> None: ...

    def build_batches(self) -> Iterable[List[ClassEntry]]: ...

    def get_resources(self) -> Iterable[ResourceEntry]: ...


@dataclass(frozen=True)
class DecompileOptions:
    src_filter: Optional[Callable[[str], bool]] = None
    res_filter: Optional[Callable[[str], bool]] = None
    rename_classes: bool = False
    disable_cache: bool = False
    include_source: bool = True
    include_resource: bool = False


class Backend(Protocol):
    def load_archive(self, path: str) -> Archive: ...

    def open_decompiler(self, path: str, options: DecompileOptions) -> Decompiler: ...


def load_backend(spec: Optional[str] = None) -> Backend:
    """
    Resolve 'package.module:attr' (or $DEXPLORE_BACKEND). The attribute is either
    a backend object or a zero-argument factory returning one.
    """
    spec = spec or os.getenv(BACKEND_ENV)
    if not spec:
        raise BackendError(f"No backend configured: pass --backend or set {BACKEND_ENV}")
    module_name, _, attr = spec.partition(":")
    if not module_name or not attr:
        raise BackendError(f"Invalid backend spec {spec!r}, expected 'module:attr'")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise BackendError(f"Cannot import backend module {module_name!r}: {e}") from e
    try:
        target = getattr(module, attr)
    except AttributeError:
        raise BackendError(f"Backend module {module_name!r} has no attribute {attr!r}") from None
    backend = target() if inspect.isclass(target) or inspect.isfunction(target) else target
    for method in ("load_archive", "open_decompiler"):
        if not callable(getattr(backend, method, None)):
            raise BackendError(f"Backend {spec!r} does not provide {method}()")
    return backend

#!/usr/bin/env python3
# Search driver: compiled filters -> backend search -> printed results (+ matched class set)
from __future__ import annotations
import logging
from typing import List, Optional, Sequence, Set
from .advanced import AdvancedQuery
from .backend import Backend, ItemResult
from .console import ConsoleSink
from .errors import EngineStateError, SearchError
from .query import (
  ClassFilter, MethodFilter, MATCH_ALL_METHODS, QuerySpec, ReferenceTypes, resolve_resources,
)

log = logging.getLogger(__name__)

_POOL_SECTIONS = (
  (ReferenceTypes.STRING, "String References: ", "strings"),
  (ReferenceTypes.TYPE_DESC, "Type References: ", "types"),
  (ReferenceTypes.FIELD, "Field References: ", "fields"),
  (ReferenceTypes.METHOD, "Method References: ", "methods"),
)


def format_reference_pool(pool, types: ReferenceTypes) -> str:
  lines = ["- ReferencePool: "]
  for flag, title, attr in _POOL_SECTIONS:
    if not types & flag:
      continue
    lines.append(title)
    section = list(getattr(pool, attr, []) or [])
    if section:
      lines.extend(f"  {it}" for it in section)
    else:
      lines.append("  [EMPTY]")
  return "\n   ".join(lines)


class DexSearchEngine:
  """
  Lifecycle: configure (set_*), init() exactly once, then search() per archive.
  """

  def __init__(self, backend: Backend, class_mode: bool, sink: Optional[ConsoleSink] = None):
    self.backend = backend
    self.class_mode = class_mode
    self.sink = sink or ConsoleSink()
    self.maximum = -1
    self.details = ReferenceTypes.NONE
    self.resource_names: List[str] = []
    self._spec: Optional[QuerySpec] = None
    self._class_adv = AdvancedQuery()
    self._method_adv = AdvancedQuery()
    self.title_result = "Class" if class_mode else "Method"
    self.title_search = "classes" if class_mode else "methods"

  @property
  def initialized(self) -> bool:
    return self._spec is not None

  def _check_state(self, initialized: bool) -> None:
    if initialized != self.initialized:
      raise EngineStateError("Engine is not initialized" if initialized else "Engine is already initialized")

  def set_maximum(self, maximum: int) -> None:
    self.maximum = maximum

  def set_details(self, types: ReferenceTypes) -> None:
    self.details = types

  def set_resource_names(self, names: Sequence[str]) -> None:
    self.resource_names = list(names)

  def init(self, spec: QuerySpec, class_advanced: AdvancedQuery, method_advanced: AdvancedQuery) -> None:
    self._check_state(False)
    self._spec = spec
    self._class_adv = class_advanced
    self._method_adv = method_advanced

  def filters(self, archive=None):
    """Class/method filters for one archive, with resource ids folded in when configured."""
    self._check_state(True)
    spec = self._spec
    if self.resource_names and archive is not None:
      spec, owners = resolve_resources(spec, self.resource_names, archive.has_class, archive.resource_id)
      log.debug("resource containers excluded: %s", owners)
    class_filter = ClassFilter.build(spec, self._class_adv)
    method_filter = MATCH_ALL_METHODS if self.class_mode else MethodFilter.build(spec, self._method_adv)
    return class_filter, method_filter

  def search(self, file: str) -> Set[str]:
    self._check_state(True)
    try:
      return self._search(file)
    except SearchError as e:
      self.sink.error("Failed", e)
    return set()

  def _search(self, file: str) -> Set[str]:
    results: Set[str] = set()
    self.sink.write(f"Searching {self.title_search}...")

    def handle(item: ItemResult) -> bool:
      if not results:
        self.sink.write("Result:")
      results.add(item.clazz)
      self.sink.write(f"+ {self.title_result}: {item}")
      if not self.details.has_none():
        self.sink.write(format_reference_pool(item.reference_pool, self.details))
      return 0 < self.maximum <= len(results)

    archive = self.backend.load_archive(file)
    class_filter, method_filter = self.filters(archive)
    if self.class_mode:
      archive.on_class_result(None, class_filter, handle)
    else:
      archive.on_method_result(None, class_filter, method_filter, handle)
    if not results:
      self.sink.write("Result:  [Not Found]")
    return results

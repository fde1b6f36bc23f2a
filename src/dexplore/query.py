#!/usr/bin/env python3
# Query spec builder: raw search flags + advanced queries -> QuerySpec and backend filters
from __future__ import annotations
import enum, re
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional, Pattern, Sequence, Tuple
from .advanced import AdvancedQuery
from .errors import ParseError, ResourceLookupError
from .literals import NumericLiteral, integer_literal, parse_numbers


class ReferenceTypes(enum.Flag):
  NONE = 0
  STRING = 0x1
  TYPE_DESC = 0x2
  FIELD = 0x4
  METHOD = 0x8
  ALL = 0xF

  @classmethod
  def parse(cls, flags: str) -> "ReferenceTypes":
    """Build from a flag string such as 'sm' (a: all, s: string, t: type, f: field, m: method)."""
    table = {"a": cls.ALL, "s": cls.STRING, "t": cls.TYPE_DESC, "f": cls.FIELD, "m": cls.METHOD}
    types = cls.NONE
    for ch in flags:
      if ch not in table:
        raise ParseError(f"Invalid reference type: {ch}")
      types |= table[ch]
    return types

  def has_none(self) -> bool:
    return not self


@dataclass(frozen=True)
class QuerySpec:
  packages: List[str] = field(default_factory=list)
  classes: List[str] = field(default_factory=list)
  class_simple_names: List[str] = field(default_factory=list)
  class_pattern: Optional[Pattern] = None
  reference_types: ReferenceTypes = ReferenceTypes.NONE
  references: List[str] = field(default_factory=list)
  reference_regex: Optional[Pattern] = None
  signatures: List[str] = field(default_factory=list)
  source_names: List[str] = field(default_factory=list)
  numbers: List[NumericLiteral] = field(default_factory=list)
  annotation_types: List[str] = field(default_factory=list)
  annotation_values: List[str] = field(default_factory=list)
  synthetic: bool = False


def _compile(flag: str, text: str) -> Optional[Pattern]:
  if not text:
    return None
  try:
    return re.compile(text)
  except re.error as e:
    raise ParseError(f"Invalid {flag} regex: {text} ({e})") from None


def build_query(packages: Sequence[str] = (), classes: Sequence[str] = (),
                class_names: Sequence[str] = (), class_regex: str = "",
                ref_types: str = "", references: Sequence[str] = (), ref_regex: str = "",
                signatures: Sequence[str] = (), sources: Sequence[str] = (),
                numbers: Sequence[str] = (), annot_types: Sequence[str] = (),
                annot_values: Sequence[str] = (), synthetic: bool = False) -> QuerySpec:
  if classes and class_names:
    raise ParseError("classes and class simple names cannot be used together")
  types = ReferenceTypes.parse(ref_types)
  has_refs = bool(references or signatures or ref_regex)
  if types.has_none() and has_refs:
    raise ParseError("references require reference types")
  if not types.has_none() and not has_refs:
    raise ParseError("reference types require references")
  return QuerySpec(
    packages=list(packages),
    classes=list(classes),
    class_simple_names=list(class_names),
    class_pattern=_compile("class", class_regex),
    reference_types=types,
    references=list(references),
    reference_regex=_compile("reference", ref_regex),
    signatures=list(signatures),
    source_names=list(sources),
    numbers=parse_numbers(numbers),
    annotation_types=list(annot_types),
    annotation_values=list(annot_values),
    synthetic=synthetic,
  )


# -----------------------------
# Resource names (-res com.app.R string:title color:accent)
# -----------------------------
def parse_res_names(res_names: Sequence[str]) -> List[str]:
  """Expand ['com.app.R', 'string:title'] into ['com.app.R$string.title']."""
  if not res_names:
    return []
  res_class = res_names[0]
  out = []
  for it in res_names[1:]:
    parts = it.split(":")
    if len(parts) != 2 or "." in it or not parts[1]:
      raise ParseError(f"Invalid resource name: {it}")
    kind, name = parts
    owner = f"{res_class}${kind}" if kind else res_class
    out.append(f"{owner}.{name}")
  return out


def exclusion_pattern(classes: Sequence[str]) -> Pattern:
  return re.compile("^(?!" + "|".join(re.escape(c) for c in classes) + ").*$")


def resolve_resources(spec: QuerySpec, res_names: Sequence[str],
                      has_class: Callable[[str], bool],
                      resource_id: Callable[[str, str], Optional[int]]) -> Tuple[QuerySpec, List[str]]:
  """
  Look up the numeric id of every 'owner.name' resource and fold it into the
  spec: ids are appended after the explicit literals, and the owning resource
  classes are excluded from class matching unless an explicit class pattern
  was supplied (in which case the explicit pattern wins unchanged).
  Returns the new spec and the resource classes in lookup order.
  """
  if not res_names:
    return spec, []
  owners: Dict[str, None] = {}
  ids: List[NumericLiteral] = []
  for res in res_names:
    owner, _, name = res.rpartition(".")
    if owner not in owners:
      if not has_class(owner):
        raise ResourceLookupError(f"Class not found: {owner}")
      owners[owner] = None
    rid = resource_id(owner, name)
    if rid is None:
      raise ResourceLookupError(f"Resource id couldn't retrieve: {owner}.{name}")
    ids.append(integer_literal(rid, res))
  classes = list(owners)
  pattern = spec.class_pattern if spec.class_pattern is not None else exclusion_pattern(classes)
  return replace(spec, numbers=spec.numbers + ids, class_pattern=pattern), classes


# -----------------------------
# Backend filter objects
# -----------------------------
@dataclass(frozen=True)
class ReferenceFilter:
  """Matches a reference pool containing every reference and signature (and the regex, if any)."""
  references: Tuple[str, ...] = ()
  signatures: Tuple[str, ...] = ()
  regex: Optional[Pattern] = None

  def __call__(self, pool) -> bool:
    if not all(pool.contains(r) for r in self.references):
      return False
    text = str(pool)
    if not all(s in text for s in self.signatures):
      return False
    return self.regex is None or self.regex.search(text) is not None


def reference_filter(spec: QuerySpec) -> Optional[ReferenceFilter]:
  if spec.reference_types.has_none():
    return None
  return ReferenceFilter(tuple(spec.references), tuple(spec.signatures), spec.reference_regex)


@dataclass(frozen=True)
class ClassFilter:
  packages: Tuple[str, ...] = ()
  classes: Tuple[str, ...] = ()
  class_simple_names: Tuple[str, ...] = ()
  class_pattern: Optional[Pattern] = None
  reference_types: ReferenceTypes = ReferenceTypes.NONE
  reference_filter: Optional[ReferenceFilter] = None
  source_names: Tuple[str, ...] = ()
  numbers: Tuple[NumericLiteral, ...] = ()
  modifiers: int = -1
  super_class: Optional[str] = None
  interfaces: Optional[Tuple[str, ...]] = None
  annotations: Tuple[str, ...] = ()
  annotation_values: Tuple[str, ...] = ()
  synthetic: bool = False

  @classmethod
  def build(cls, spec: QuerySpec, advanced: AdvancedQuery) -> "ClassFilter":
    return cls(
      packages=tuple(spec.packages),
      classes=tuple(spec.classes),
      class_simple_names=tuple(spec.class_simple_names),
      class_pattern=spec.class_pattern,
      reference_types=spec.reference_types,
      reference_filter=reference_filter(spec),
      source_names=tuple(spec.source_names),
      numbers=tuple(spec.numbers),
      modifiers=advanced.modifiers,
      super_class=advanced.super_class,
      interfaces=None if advanced.interfaces is None else tuple(advanced.interfaces),
      annotations=tuple(spec.annotation_types) + tuple(advanced.annotations),
      annotation_values=tuple(spec.annotation_values),
      synthetic=spec.synthetic,
    )


@dataclass(frozen=True)
class MethodFilter:
  reference_types: ReferenceTypes = ReferenceTypes.NONE
  reference_filter: Optional[ReferenceFilter] = None
  numbers: Tuple[NumericLiteral, ...] = ()
  modifiers: int = -1
  method_names: Tuple[str, ...] = ()
  params: Optional[Tuple[str, ...]] = None
  return_type: Optional[str] = None
  param_size: int = -1
  annotations: Tuple[str, ...] = ()
  annotation_values: Tuple[str, ...] = ()
  synthetic: bool = False

  @classmethod
  def build(cls, spec: QuerySpec, advanced: AdvancedQuery) -> "MethodFilter":
    return cls(
      reference_types=spec.reference_types,
      reference_filter=reference_filter(spec),
      numbers=tuple(spec.numbers),
      modifiers=advanced.modifiers,
      method_names=tuple(advanced.method_names),
      params=None if advanced.method_params is None else tuple(advanced.method_params),
      return_type=advanced.method_return,
      param_size=advanced.param_size,
      annotations=tuple(spec.annotation_types) + tuple(advanced.annotations),
      annotation_values=tuple(spec.annotation_values),
      synthetic=spec.synthetic,
    )


MATCH_ALL_METHODS = MethodFilter()

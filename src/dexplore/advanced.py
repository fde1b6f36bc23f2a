#!/usr/bin/env python3
# Advanced query mini-language: 'f:public+final,s:Base,i:Foo+Bar'
from __future__ import annotations
from dataclasses import dataclass, field
from functools import reduce
from typing import List, Optional, Tuple
from .constants import (
  QUERY_DIVIDER, KEY_EXTRACTOR, VALUE_DIVIDER, MODIFIERS,
  KEY_FLAGS, KEY_SUPER, KEY_IFACES, KEY_METHODS, KEY_PARAMS, KEY_PSIZE, KEY_RETURN,
  CLASS_KEYS, METHOD_KEYS, EMPTY_ALLOWED_KEYS,
)
from .errors import ParseError


@dataclass
class AdvancedQuery:
  """
  Per-entity constraints. -1 / None mean "unset"; interfaces=[] and
  method_params=[] mean "has none", which is not the same as unset.
  """
  modifiers: int = -1
  super_class: Optional[str] = None
  interfaces: Optional[List[str]] = None
  annotations: List[str] = field(default_factory=list)
  method_names: List[str] = field(default_factory=list)
  method_params: Optional[List[str]] = None
  method_return: Optional[str] = None
  param_size: int = -1

def _illegal(msg: str) -> ParseError:
  return ParseError(f"Invalid {msg}")


def to_modifier(name: str) -> int:
  try:
    return MODIFIERS[name.upper()]
  except KeyError:
    raise _illegal(f"modifier: {name}") from None


def modifier_mask(names: List[str]) -> int:
  return reduce(lambda acc, bit: acc | bit, (to_modifier(n) for n in names), 0)


def _divide(query: str) -> Tuple[str, str]:
  if KEY_EXTRACTOR not in query:
    raise _illegal(f"advanced query: {query}")
  head, _, args = query.partition(KEY_EXTRACTOR)
  key = head[-1:] or " "
  if key.isspace():
    raise _illegal(f"key in advanced query: {query}")
  return key, args


def _sanitize(key: str, args: str) -> List[str]:
  values = [v.strip() for v in args.split(VALUE_DIVIDER)]
  values = [v for v in values if v]
  if not values and key not in EMPTY_ALLOWED_KEYS:
    raise _illegal(f"value for key: {key}")
  return values


def _check_key(key: str, is_class: bool) -> None:
  if is_class and key not in CLASS_KEYS:
    raise _illegal(f"query key for class: {key}")
  if not is_class and key not in METHOD_KEYS:
    raise _illegal(f"query key for method: {key}")


def parse_advanced(is_class: bool, raw: str) -> AdvancedQuery:
  advanced = AdvancedQuery()
  if not raw:
    return advanced
  for query in raw.split(QUERY_DIVIDER):
    key, args = _divide(query)
    _check_key(key, is_class)
    values = _sanitize(key, args)
    if key == KEY_FLAGS:
      advanced.modifiers = modifier_mask(values)
    elif key == KEY_SUPER:
      advanced.super_class = values[0]
    elif key == KEY_IFACES:
      advanced.interfaces = values
    elif key == KEY_METHODS:
      advanced.method_names = values
    elif key == KEY_PARAMS:
      advanced.method_params = values
    elif key == KEY_PSIZE:
      try:
        advanced.param_size = int(values[0])
      except ValueError:
        raise _illegal(f"value for key: {key}") from None
    elif key == KEY_RETURN:
      advanced.method_return = values[0]
  return advanced

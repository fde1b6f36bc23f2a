#!/usr/bin/env python3
# Numeric literal tokens (-num flag values) -> typed literals with exact bit patterns
from __future__ import annotations
import enum, math, re, struct
from dataclasses import dataclass, field
from typing import Iterable, List, Union
from .errors import InvalidLiteral

_HEX = re.compile(r"^[+-]?0x[0-9a-f]+$")
_INT = re.compile(r"^[+-]?[0-9]+$")
_DECIMAL = re.compile(r"^[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:e[+-]?[0-9]+)?$")

INT64_MIN = -(1 << 63)
INT64_MAX = (1 << 63) - 1


class LiteralKind(enum.Enum):
  INTEGER = "int"
  FLOAT = "float"
  DOUBLE = "double"


@dataclass(frozen=True)
class NumericLiteral:
  """
  A parsed number. Equality is on (kind, encoded_value): 12.5f and 12.5d are
  different literals because the search backend compares raw bit patterns.
  """
  raw_text: str = field(compare=False)
  kind: LiteralKind
  encoded_value: int

  @property
  def value(self) -> Union[int, float]:
    if self.kind is LiteralKind.FLOAT:
      return struct.unpack(">f", struct.pack(">I", self.encoded_value))[0]
    if self.kind is LiteralKind.DOUBLE:
      return struct.unpack(">d", struct.pack(">Q", self.encoded_value))[0]
    return self.encoded_value

  def __str__(self) -> str:
    suffix = {LiteralKind.FLOAT: "f", LiteralKind.DOUBLE: "d"}.get(self.kind, "")
    return f"{self.value}{suffix}"


def integer_literal(value: int, raw_text: str | None = None) -> NumericLiteral:
  if not INT64_MIN <= value <= INT64_MAX:
    raise InvalidLiteral(raw_text or str(value), "out of 64-bit range")
  return NumericLiteral(raw_text or str(value), LiteralKind.INTEGER, value)


def _parse_hex(text: str, num: str) -> NumericLiteral:
  sign = -1 if num.startswith("-") else 1
  magnitude = int(num.lstrip("+-")[2:], 16)
  return integer_literal(sign * magnitude, text)


def _parse_float(text: str, digits: str) -> NumericLiteral:
  if not _DECIMAL.match(digits):
    raise InvalidLiteral(text)
  value = float(digits)
  try:
    packed = struct.pack(">f", value)
  except OverflowError:
    raise InvalidLiteral(text, "out of float range") from None
  return NumericLiteral(text, LiteralKind.FLOAT, struct.unpack(">I", packed)[0])


def _parse_double(text: str, digits: str) -> NumericLiteral:
  if not _DECIMAL.match(digits):
    raise InvalidLiteral(text)
  value = float(digits)
  if math.isinf(value):
    raise InvalidLiteral(text, "out of double range")
  return NumericLiteral(text, LiteralKind.DOUBLE, struct.unpack(">Q", struct.pack(">d", value))[0])


def parse_number(text: str) -> NumericLiteral:
  num = text.strip().lower()
  long_marker = num.endswith("l")
  if long_marker:
    num = num[:-1]
  if not num:
    raise InvalidLiteral(text)
  if _HEX.match(num):
    return _parse_hex(text, num)
  if long_marker and "." in num:
    raise InvalidLiteral(text, "long marker on a decimal literal")
  if num.endswith("f"):
    return _parse_float(text, num[:-1])
  if num.endswith("d"):
    return _parse_double(text, num[:-1])
  if "." in num:
    return _parse_double(text, num)
  if not _INT.match(num):
    raise InvalidLiteral(text)
  return integer_literal(int(num), text)


def parse_numbers(tokens: Iterable[str]) -> List[NumericLiteral]:
  return [parse_number(t) for t in tokens]

#!/usr/bin/env python3
# Exception hierarchy shared by the query compiler, search driver and decoder
from __future__ import annotations


class DexploreError(Exception):
  """Base class for every error raised by dexplore."""


class ParseError(DexploreError, ValueError):
  """Malformed command input: literal, advanced query, key or modifier."""


class InvalidLiteral(ParseError):
  def __init__(self, text: str, reason: str = ""):
    self.text = text
    msg = f"Invalid number: {text!r}"
    super().__init__(f"{msg} ({reason})" if reason else msg)


class OutputDirectoryError(DexploreError, OSError):
  """The output directory of one archive could not be cleared or created."""


class DecompilerError(DexploreError):
  """Raised by a decompiler backend when an archive cannot be processed at all."""


class EngineStateError(DexploreError, RuntimeError):
  """An engine operation was invoked out of lifecycle order."""


class BackendError(DexploreError):
  pass


class ResourceLookupError(DexploreError):
  pass


class SearchError(DexploreError):
  """Raised by a search backend when an archive cannot be loaded or scanned."""

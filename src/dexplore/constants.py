#!/usr/bin/env python3
# Shared constants, defaults and static description tables
from __future__ import annotations
import os

DEFAULT_OUTPUT = "dexplore-out"
SOURCES_SUFFIX = "_sources"
FAILED_LOG_NAME = "_failed_classes"
POLL_INTERVAL_MS = 200
BACKEND_ENV = "DEXPLORE_BACKEND"
FALLBACK_VERSION = "1.0.0"

def default_thread_count() -> int:
  return os.cpu_count() or 2

# --- advanced query mini-language ---
QUERY_DIVIDER = ","
KEY_EXTRACTOR = ":"
VALUE_DIVIDER = "+"

KEY_FLAGS = "f"
KEY_SUPER = "s"
KEY_IFACES = "i"
KEY_METHODS = "m"
KEY_PARAMS = "p"
KEY_PSIZE = "q"
KEY_RETURN = "r"

CLASS_KEYS = frozenset({KEY_FLAGS, KEY_SUPER, KEY_IFACES})
METHOD_KEYS = frozenset({KEY_FLAGS, KEY_METHODS, KEY_PARAMS, KEY_PSIZE, KEY_RETURN})
EMPTY_ALLOWED_KEYS = frozenset({KEY_IFACES, KEY_PARAMS})

ADVANCED_KEYS = {
  KEY_FLAGS: "modifiers (public, final, static, ...)",
  KEY_SUPER: "superclass",
  KEY_IFACES: "interfaces (empty value: no interfaces)",
  KEY_METHODS: "method names",
  KEY_PARAMS: "parameter types (empty value: no parameters)",
  KEY_PSIZE: "parameter count",
  KEY_RETURN: "return type",
}

CLASS_QUERY_FORMAT = "'f:public+final+..., s:superclass, i:interface1+interface2+...'"
METHOD_QUERY_FORMAT = "'f:public+..., m:methodName+..., p:param1+..., r:return, q:paramSize'"

# JVM access flags
MODIFIERS = {
  "PUBLIC": 0x0001,
  "PRIVATE": 0x0002,
  "PROTECTED": 0x0004,
  "STATIC": 0x0008,
  "FINAL": 0x0010,
  "SYNCHRONIZED": 0x0020,
  "NATIVE": 0x0100,
  "ABSTRACT": 0x0400,
  "STRICT": 0x0800,
}

# --- command line ---
SEARCH_MODES = ("c", "m")
DECODE_MODES = ("j", "s", "r")

REFERENCE_TYPE_KEYS = {
  "a": "all",
  "s": "string",
  "t": "type",
  "f": "field",
  "m": "method",
}

COMMANDS = {
  "search": "Search classes and methods",
  "decode": "Decompile java, smali and resource files",
  "mapver": "Map classes from one version to another",
  "batch": "Perform multiple search at once",
}

#!/usr/bin/env python3
# Eligibility predicates for decode passes (source classes / resource entries)
from __future__ import annotations
from typing import Callable, Iterable, Optional, Sequence

Predicate = Callable[[str], bool]


def java_to_dex_type_name(name: str) -> str:
    """'com.app.Foo' -> 'Lcom/app/Foo;'"""
    if not name:
        return name
    return "L" + name.replace(".", "/") + ";"


def _match_class_or_inner(prefixes: Sequence[str], entry: str) -> bool:
    for p in prefixes:
        if entry.startswith(p) and len(entry) > len(p) and entry[len(p)] in ";$":
            return True
    return False


def build_src_filter(packages: Sequence[str] = (), classes: Sequence[str] = ()) -> Optional[Predicate]:
    """
    Source eligibility for the decode command: an internal type name passes if
    it lives under one of the packages, or is one of the classes or one of
    their inner classes. None means "everything".
    """
    pkgs = [f"L{p.replace('.', '/')}/" for p in packages]
    # 'Lcom/app/Foo;' -> 'Lcom/app/Foo' so the next char can be ';' or '$'
    clss = [java_to_dex_type_name(c)[:-1] for c in classes]
    if not pkgs and not clss:
        return None

    def accept(entry: str) -> bool:
        if any(entry.startswith(p) for p in pkgs):
            return True
        return _match_class_or_inner(clss, entry)
    return accept


def build_res_filter(resources: Sequence[str] = ()) -> Optional[Predicate]:
    """Resource eligibility: 'values' -> anything under res/values."""
    if not resources:
        return None
    prefixes = [f"res/{r}" for r in resources]
    return lambda entry: any(entry.startswith(p) for p in prefixes)


def results_to_src_filter(class_names: Iterable[str]) -> Predicate:
    """Turn the matched classes of a search into an exact-match source predicate."""
    wanted = frozenset(java_to_dex_type_name(n) for n in class_names)
    return lambda entry: entry in wanted

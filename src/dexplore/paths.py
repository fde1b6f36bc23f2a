import os
import threading
from pathlib import Path
from typing import Set, Tuple
from .constants import SOURCES_SUFFIX

def resolve_output_dir(output: str, archive: str) -> Path:
    """
    Per-archive output directory.
    e.g., dexplore decode ./build/app.apk -o out → ./out/app.apk_sources
    """
    return Path(os.path.abspath(output)) / f"{Path(archive).name}{SOURCES_SUFFIX}"

def candidate_paths(directory: Path, base: str, index: int, flatten: bool) -> Tuple[Path, Path]:
    name = base if index == 1 else f"{base}~{index}"
    if flatten:
        return directory / f"{name}.java", directory / f"{name}.smali"
    return directory / "java" / f"{name}.java", directory / "smali" / f"{name}.smali"

class OutputPathResolver:
    """
    Assigns each class a (java, smali) pair of output files.
    Twins always share a suffix: base, base~2, base~3, ... and the first index
    at which neither file exists on disk nor was handed out earlier wins.
    Safe to call from several workers at once.
    """

    def __init__(self, directory: Path, flatten: bool = False):
        self.directory = Path(directory)
        self.flatten = flatten
        self._assigned: Set[Path] = set()
        self._lock = threading.Lock()

    def base_path(self, entry) -> str:
        return entry.name if self.flatten else entry.alias_path

    def _taken(self, path: Path) -> bool:
        return path in self._assigned or path.exists()

    def resolve(self, entry) -> Tuple[Path, Path]:
        base = self.base_path(entry)
        with self._lock:
            index = 1
            while True:
                java, smali = candidate_paths(self.directory, base, index, self.flatten)
                if not (self._taken(java) or self._taken(smali)):
                    self._assigned.update((java, smali))
                    return java, smali
                index += 1

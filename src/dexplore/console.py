#!/usr/bin/env python3
# Console I/O: output sink with a rewritable progress line, pause monitor, overwrite prompt
from __future__ import annotations
import enum, os, queue, sys, threading
from pathlib import Path
from typing import Callable, List, Optional, TextIO


class ConsoleSink:
    """
    Where user-facing output goes. reprint() rewrites the current line in place
    (progress); any other write first finishes that line. mute_errors() drops
    error output until restore().
    """

    def __init__(self, out: Optional[TextIO] = None, err: Optional[TextIO] = None):
        self.out = out if out is not None else sys.stdout
        self.err = err if err is not None else sys.stderr
        self._lock = threading.Lock()
        self._overlay = 0
        self._muted = False

    def _end_overlay(self) -> None:
        if self._overlay:
            self.out.write("\n")
            self._overlay = 0

    def write(self, msg: str = "", newline: bool = True) -> None:
        with self._lock:
            self._end_overlay()
            self.out.write(msg + ("\n" if newline else ""))
            self.out.flush()

    def error(self, msg: str, exc: Optional[BaseException] = None) -> None:
        if exc is not None:
            msg = f"{msg}[{type(exc).__name__}]: {exc}"
        with self._lock:
            if self._muted:
                return
            self._end_overlay()
            print(msg, file=self.err)

    def reprint(self, msg: str) -> None:
        with self._lock:
            pad = " " * max(0, self._overlay - len(msg))
            self.out.write("\r" + msg + pad)
            self.out.flush()
            self._overlay = len(msg)

    def mute_errors(self) -> None:
        with self._lock:
            self._muted = True

    def restore(self) -> None:
        with self._lock:
            self._end_overlay()
            self._muted = False
            self.out.flush()


class ConsoleMonitor:
    """
    Calls the registered handlers each time a line (ENTER) arrives on stdin.

    Once started, the monitor owns the stream: anyone else who needs a line
    (the overwrite prompt) asks through readline(), and that line is handed
    over instead of being treated as a toggle.
    """

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream if stream is not None else sys.stdin
        self._handlers: List[Callable[[], None]] = []
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._answers: "queue.Queue[str]" = queue.Queue()
        self._waiting = 0
        self._closed = False

    def register(self, handler: Callable[[], None]) -> None:
        self._handlers.append(handler)

    @property
    def started(self) -> bool:
        return self._thread is not None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._loop, name="dexplore-monitor", daemon=True)
        self._thread.start()

    def readline(self) -> str:
        """Next line of input for a caller other than the handlers; '' on EOF."""
        with self._lock:
            owned = self._thread is not None and not self._closed
            if owned:
                self._waiting += 1
        if not owned:
            return self.stream.readline()
        return self._answers.get()

    def _loop(self) -> None:
        for line in iter(self.stream.readline, ""):
            with self._lock:
                claimed = self._waiting > 0
                if claimed:
                    self._waiting -= 1
                    self._answers.put(line)
            if claimed:
                continue
            for handler in self._handlers:
                handler()
        with self._lock:
            self._closed = True
            for _ in range(self._waiting):
                self._answers.put("")
            self._waiting = 0


def memory_usage() -> str:
    """Peak resident size of this process against physical memory (POSIX only)."""
    try:
        import resource
        total = os.sysconf("SC_PAGE_SIZE") * os.sysconf("SC_PHYS_PAGES")
    except (ImportError, AttributeError, ValueError, OSError):
        return "Memory: [ unavailable ]"
    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # ru_maxrss is in bytes on macOS, KiB elsewhere
    used = peak if sys.platform == "darwin" else peak * 1024
    gb = 1024 ** 3
    return f"Memory: [ {used * 100 // total}% | {used / gb:.2f}GB/{total / gb:.2f}GB ]"


class DirChoice(enum.Enum):
    OVERWRITE = "y"
    MERGE = "m"
    SKIP = "n"


Prompt = Callable[[Path, bool], DirChoice]


def console_prompt(directory: Path, merge_allowed: bool,
                   readline: Optional[Callable[[], str]] = None) -> DirChoice:
    """
    Ask whether an existing output directory may be overwritten (or merged, in
    flat mode). The answer is read with `readline` when given, else input().
    """
    hint = " or Merge? [m]" if merge_allowed else ""
    question = f">> Overwrite? [y/n]{hint}: "
    if readline is None:
        try:
            line = input(question)
        except EOFError:
            return DirChoice.SKIP
    else:
        print(question, end="", flush=True)
        line = readline()
        if not line:
            return DirChoice.SKIP
    line = line.strip().lower()
    if line == "y":
        return DirChoice.OVERWRITE
    if merge_allowed and line == "m":
        return DirChoice.MERGE
    return DirChoice.SKIP

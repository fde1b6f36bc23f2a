#!/usr/bin/env python3
# Decode orchestrator: one archive -> <output>/<archive>_sources via the worker pool
from __future__ import annotations
import enum, logging, os, shutil, threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional
from .backend import Backend, ClassEntry, DecompileOptions, ResourceEntry
from .console import ConsoleMonitor, ConsoleSink, DirChoice, Prompt, console_prompt, memory_usage
from .constants import FAILED_LOG_NAME, POLL_INTERVAL_MS
from .errors import DecompilerError, OutputDirectoryError
from .paths import OutputPathResolver, resolve_output_dir
from .tasks import TaskHandler

log = logging.getLogger(__name__)


class DecodeState(enum.Enum):
    INIT = "init"
    RESOLVING_OUTPUT = "resolving_output"
    DISPATCHING = "dispatching"
    AWAITING = "awaiting"
    DONE = "done"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class DecodeReport:
    archive: str
    state: DecodeState = DecodeState.INIT
    output_dir: Optional[Path] = None
    total: int = 0
    completed: int = 0
    failures: int = 0


class FailureLog:
    """Append-only `_failed_classes` list. Write errors are ignored."""

    def __init__(self, directory: Path):
        self.path = Path(directory) / FAILED_LOG_NAME
        self._lock = threading.Lock()
        self.count = 0

    def append(self, full_name: str, raw_name: str) -> None:
        with self._lock:
            self.count += 1
            try:
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(f"- {full_name} ({raw_name})\n")
            except OSError:
                pass


def save_code(text: str, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def progress(cur: int, total: int) -> str:
    percent = f"[{cur * 100 // total if total else 100}%]"
    return percent.ljust(7)


class DexFileDecoder:
    def __init__(self, backend: Backend, output: str, thread_count: Optional[int] = None,
                 pause_support: bool = False, sink: Optional[ConsoleSink] = None,
                 prompt: Optional[Prompt] = None, monitor: Optional[ConsoleMonitor] = None):
        self.backend = backend
        self.output = output
        self.sink = sink or ConsoleSink()
        self.prompt = prompt or self._ask
        self.flat_output = False
        self.decode_java = False
        self.decode_smali = False
        self.decode_res = False
        self.rename_class = False
        self.disable_cache = False
        self.src_filter: Optional[Callable[[str], bool]] = None
        self.res_filter: Optional[Callable[[str], bool]] = None
        self.tasks = TaskHandler(thread_count, pause_support)
        self._pause_lock = threading.Lock()
        # started on the first archive that gets past the output prompt
        self.monitor: Optional[ConsoleMonitor] = None
        if pause_support:
            self.monitor = monitor or ConsoleMonitor()
            self.monitor.register(self.toggle_pause)

    def options(self) -> DecompileOptions:
        return DecompileOptions(
            src_filter=self.src_filter,
            res_filter=self.res_filter,
            rename_classes=self.rename_class,
            disable_cache=self.disable_cache,
            include_source=(self.decode_java or self.decode_smali),
            include_resource=self.decode_res,
        )

    def toggle_pause(self) -> None:
        with self._pause_lock:
            if self.tasks.paused:
                self.sink.write("Resumed...")
                self.tasks.resume()
            else:
                self.tasks.pause()
                self.sink.write("Paused... press ENTER to resume")
                self.sink.write(memory_usage())

    def _ask(self, directory: Path, merge_allowed: bool) -> DirChoice:
        readline = self.monitor.readline if self.monitor is not None else None
        return console_prompt(directory, merge_allowed, readline)

    # --- RESOLVING_OUTPUT ---
    def _prepare_dir(self, archive: str) -> Optional[Path]:
        directory = resolve_output_dir(self.output, archive)
        merge = False
        if directory.exists():
            self.sink.error(f"!! Output directory exists: {directory}")
            choice = self.prompt(directory, self.flat_output)
            if choice is DirChoice.OVERWRITE:
                self.sink.write("Cleaning...")
                try:
                    shutil.rmtree(directory)
                except OSError as e:
                    raise OutputDirectoryError(f"Failed to overwrite: {directory} ({e})") from e
            elif choice is DirChoice.MERGE and self.flat_output:
                merge = True
            else:
                return None
        if not merge:
            try:
                directory.mkdir(parents=True)
            except OSError as e:
                raise OutputDirectoryError(f"Cannot create: {directory} ({e})") from e
        return directory

    # --- per-item work, run on workers ---
    def _write_source(self, paths: OutputPathResolver, failures: FailureLog, entry: ClassEntry) -> None:
        try:
            java_path, smali_path = paths.resolve(entry)
            if self.decode_java:
                java = entry.code
                if not java:
                    return
                save_code(java, java_path)
            if self.decode_smali:
                save_code(entry.smali, smali_path)
        except Exception as e:
            log.debug("decode failed for %s: %r", entry.full_name, e)
            failures.append(entry.full_name, entry.raw_name)

    def _write_batch(self, paths: OutputPathResolver, failures: FailureLog, batch) -> None:
        for entry in batch:
            self._write_source(paths, failures, entry)

    def _write_resource(self, directory: Path, failures: FailureLog, resource: ResourceEntry) -> None:
        try:
            resource.save(directory)
        except Exception as e:
            log.debug("resource failed for %s: %r", resource.name, e)
            failures.append(resource.name, resource.name)

    def decode(self, file: str) -> DecodeReport:
        report = DecodeReport(archive=os.path.basename(file))
        report.state = DecodeState.RESOLVING_OUTPUT
        try:
            directory = self._prepare_dir(file)
        except OutputDirectoryError as e:
            self.sink.error(f"!! {e}")
            self.sink.error(f"!!--> Skipping: {report.archive}")
            report.state = DecodeState.FAILED
            return report
        if directory is None:
            self.sink.error(f"!!--> Skipping: {report.archive}")
            report.state = DecodeState.SKIPPED
            return report
        if self.monitor is not None:
            self.monitor.start()
        report.output_dir = directory
        paths = OutputPathResolver(directory, self.flat_output)
        failures = FailureLog(directory)
        self.sink.write("Preparing...")
        self.sink.mute_errors()
        try:
            with self.backend.open_decompiler(file, self.options()) as decompiler:
                decompiler.init()
                report.state = DecodeState.DISPATCHING
                for batch in decompiler.build_batches():
                    self.tasks.dispatch(lambda b=batch: self._write_batch(paths, failures, b))
                for resource in decompiler.get_resources():
                    self.tasks.dispatch(lambda r=resource: self._write_resource(directory, failures, r))
                report.total = self.tasks.total
                if not self.tasks.has_task():
                    self.sink.write("Nothing to save.")
                    report.state = DecodeState.DONE
                    return report
                report.state = DecodeState.AWAITING
                self.tasks.await_completion(POLL_INTERVAL_MS, self._on_progress(report))
                report.state = DecodeState.DONE
        except (DecompilerError, OSError) as e:
            if self.tasks.has_task():
                self.tasks.await_completion(POLL_INTERVAL_MS)
            self.sink.restore()
            self.sink.error("Failed", e)
            report.state = DecodeState.FAILED
        finally:
            self.sink.restore()
            report.failures = failures.count
        return report

    def _on_progress(self, report: DecodeReport):
        def update(cur: int, total: int) -> None:
            report.completed = cur
            self.sink.reprint(f">> Saving... {progress(cur, total)}")
        return update

    def close(self) -> None:
        self.tasks.shutdown()

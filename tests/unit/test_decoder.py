"""Tests for the decode orchestrator."""
import io
import os
import threading
from unittest.mock import patch
from dexplore.console import ConsoleMonitor, ConsoleSink, DirChoice
from dexplore.decoder import DecodeState, DexFileDecoder, FailureLog, progress
from dexplore.errors import DecompilerError
from fake_backend import FakeBackend, FakeClass, FakeDecompiler, FakeResource, make_backend


def make_sink():
    return ConsoleSink(io.StringIO(), io.StringIO())


def make_decoder(backend, out, mode="js", flat=False, prompt=None, **kwargs):
    decoder = DexFileDecoder(backend, str(out), thread_count=2, sink=make_sink(),
                             prompt=prompt or (lambda d, m: DirChoice.SKIP), **kwargs)
    decoder.decode_java = "j" in mode
    decoder.decode_smali = "s" in mode
    decoder.decode_res = "r" in mode
    decoder.flat_output = flat
    return decoder


def tree(root):
    return sorted(str(p.relative_to(root)) for p in root.rglob("*") if p.is_file())


class TestProgress:
    def test_format(self):
        assert progress(1, 3) == "[33%]  "
        assert progress(3, 3) == "[100%] "
        assert progress(0, 0) == "[100%] "


class TestFailureLog:
    def test_appends_lines(self, tmp_path):
        log = FailureLog(tmp_path)
        log.append("com.app.A", "Lcom/app/A;")
        log.append("com.app.B", "Lcom/app/B;")
        assert log.count == 2
        assert (tmp_path / "_failed_classes").read_text() == \
            "- com.app.A (Lcom/app/A;)\n- com.app.B (Lcom/app/B;)\n"

    def test_write_error_ignored(self, tmp_path):
        log = FailureLog(tmp_path / "missing")
        log.append("x", "Lx;")
        assert log.count == 1


class TestDecode:
    def test_java_and_smali_tree(self, tmp_path):
        decoder = make_decoder(make_backend(), tmp_path)
        report = decoder.decode("/in/app.apk")
        decoder.close()
        out = tmp_path / "app.apk_sources"
        assert report.state is DecodeState.DONE
        assert report.output_dir == out
        assert report.total == 2
        assert report.failures == 0
        assert "java/com/app/Main.java" in tree(out)
        assert "java/com/app/Main$1.java" in tree(out)
        assert "smali/com/app/net/Api.smali" in tree(out)
        assert not (out / "_failed_classes").exists()

    def test_flat_twins(self, tmp_path):
        backend = FakeBackend(classes=[FakeClass("a.Main", "A"), FakeClass("b.Main", "B")])
        decoder = make_decoder(backend, tmp_path, mode="j", flat=True)
        decoder.decode("app.apk")
        decoder.close()
        out = tmp_path / "app.apk_sources"
        assert tree(out) == ["Main.java", "Main~2.java"]
        assert {(out / n).read_text() for n in tree(out)} == {"A", "B"}

    def test_one_failure_among_many(self, tmp_path):
        classes = [FakeClass(f"com.app.C{i}") for i in range(5)] + [FakeClass("com.app.Bad", fail=True)]
        decoder = make_decoder(FakeBackend(classes=classes, batch_size=3), tmp_path)
        report = decoder.decode("app.apk")
        decoder.close()
        out = tmp_path / "app.apk_sources"
        assert report.state is DecodeState.DONE
        assert report.failures == 1
        assert (out / "_failed_classes").read_text() == "- com.app.Bad (Lcom/app/Bad;)\n"
        assert len([n for n in tree(out) if n.startswith("java/")]) == 5
        assert not (out / "smali/com/app/Bad.smali").exists()

    def test_empty_java_writes_nothing(self, tmp_path):
        decoder = make_decoder(FakeBackend(classes=[FakeClass("com.app.Empty", "")]), tmp_path)
        decoder.decode("app.apk")
        decoder.close()
        assert tree(tmp_path / "app.apk_sources") == []

    def test_smali_only(self, tmp_path):
        decoder = make_decoder(FakeBackend(classes=[FakeClass("com.app.Main")]), tmp_path, mode="s")
        decoder.decode("app.apk")
        decoder.close()
        assert tree(tmp_path / "app.apk_sources") == ["smali/com/app/Main.smali"]

    def test_resources_with_filter(self, tmp_path):
        decoder = make_decoder(make_backend(), tmp_path, mode="r")
        decoder.res_filter = lambda name: name.startswith("res/values")
        assert not decoder.options().include_source
        report = decoder.decode("app.apk")
        decoder.close()
        assert report.total == 1
        assert tree(tmp_path / "app.apk_sources") == ["res/values/strings.xml"]

    def test_resource_failure_logged(self, tmp_path):
        backend = FakeBackend(resources=[FakeResource("res/raw/a.bin", fail=True)])
        decoder = make_decoder(backend, tmp_path, mode="r")
        report = decoder.decode("app.apk")
        decoder.close()
        assert report.failures == 1
        assert "res/raw/a.bin" in (tmp_path / "app.apk_sources" / "_failed_classes").read_text()

    def test_nothing_to_save(self, tmp_path):
        decoder = make_decoder(FakeBackend(), tmp_path)
        report = decoder.decode("app.apk")
        decoder.close()
        assert report.state is DecodeState.DONE
        assert "Nothing to save." in decoder.sink.out.getvalue()

    def test_options_forwarded(self, tmp_path):
        backend = make_backend()
        decoder = make_decoder(backend, tmp_path)
        decoder.rename_class = True
        decoder.disable_cache = True
        decoder.decode("app.apk")
        decoder.close()
        options = backend.decompilers[0].options
        assert options.rename_classes and options.disable_cache
        assert options.include_source and not options.include_resource
        assert backend.decompilers[0].closed

    def test_progress_line(self, tmp_path):
        decoder = make_decoder(make_backend(), tmp_path)
        decoder.decode("app.apk")
        decoder.close()
        output = decoder.sink.out.getvalue()
        assert "Preparing..." in output
        assert ">> Saving... [100%]" in output


class TestDecompilerFailure:
    def test_init_error_fails_archive(self, tmp_path):
        backend = FakeBackend(classes=[FakeClass("a.A")], init_error=DecompilerError("bad dex"))
        decoder = make_decoder(backend, tmp_path)
        report = decoder.decode("app.apk")
        decoder.close()
        assert report.state is DecodeState.FAILED
        assert "Failed[DecompilerError]: bad dex" in decoder.sink.err.getvalue()
        assert backend.decompilers[0].closed

    def test_next_archive_still_decoded(self, tmp_path):
        backend = FakeBackend(classes=[FakeClass("a.A")], init_error=DecompilerError("bad dex"))
        decoder = make_decoder(backend, tmp_path)
        decoder.decode("one.apk")
        backend.init_error = None
        report = decoder.decode("two.apk")
        decoder.close()
        assert report.state is DecodeState.DONE
        assert tree(tmp_path / "two.apk_sources") == ["java/a/A.java", "smali/a/A.smali"]

    def test_unreadable_archive_fails_only_that_archive(self, tmp_path):
        backend = FakeBackend(classes=[FakeClass("a.A")], init_error=OSError("archive unreadable"))
        decoder = make_decoder(backend, tmp_path)
        first = decoder.decode("one.apk")
        backend.init_error = None
        second = decoder.decode("two.apk")
        decoder.close()
        assert first.state is DecodeState.FAILED
        assert "Failed[OSError]: archive unreadable" in decoder.sink.err.getvalue()
        assert second.state is DecodeState.DONE
        assert tree(tmp_path / "two.apk_sources") == ["java/a/A.java", "smali/a/A.smali"]

    def test_io_error_mid_dispatch_drains_pending_tasks(self, tmp_path):
        decoder = make_decoder(make_backend(), tmp_path, mode="jr")
        with patch.object(FakeDecompiler, "get_resources", side_effect=OSError("zip entry truncated")):
            report = decoder.decode("one.apk")
        assert report.state is DecodeState.FAILED
        assert not decoder.tasks.has_task()
        assert "java/com/app/Main.java" in tree(tmp_path / "one.apk_sources")
        assert decoder.decode("two.apk").state is DecodeState.DONE
        decoder.close()


class TestExistingOutput:
    def existing(self, tmp_path):
        out = tmp_path / "app.apk_sources"
        out.mkdir()
        (out / "Main.java").write_text("old")
        return out

    def test_skip(self, tmp_path):
        self.existing(tmp_path)
        decoder = make_decoder(make_backend(), tmp_path)
        report = decoder.decode("app.apk")
        decoder.close()
        assert report.state is DecodeState.SKIPPED
        assert "!!--> Skipping: app.apk" in decoder.sink.err.getvalue()
        assert backend_untouched(decoder)

    def test_overwrite(self, tmp_path):
        out = self.existing(tmp_path)
        decoder = make_decoder(make_backend(), tmp_path, prompt=lambda d, m: DirChoice.OVERWRITE)
        decoder.decode("app.apk")
        decoder.close()
        assert not (out / "Main.java").exists()
        assert (out / "java/com/app/Main.java").exists()

    def test_merge_in_flat_mode(self, tmp_path):
        out = self.existing(tmp_path)
        asked = []

        def prompt(directory, merge_allowed):
            asked.append(merge_allowed)
            return DirChoice.MERGE

        backend = FakeBackend(classes=[FakeClass("com.app.Main", "new")])
        decoder = make_decoder(backend, tmp_path, mode="j", flat=True, prompt=prompt)
        decoder.decode("app.apk")
        decoder.close()
        assert asked == [True]
        assert (out / "Main.java").read_text() == "old"
        assert (out / "Main~2.java").read_text() == "new"

    def test_merge_refused_in_tree_mode(self, tmp_path):
        self.existing(tmp_path)
        decoder = make_decoder(make_backend(), tmp_path, prompt=lambda d, m: DirChoice.MERGE)
        assert decoder.decode("app.apk").state is DecodeState.SKIPPED
        decoder.close()

    def test_uncreatable_output(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        decoder = make_decoder(make_backend(), blocker)
        report = decoder.decode("app.apk")
        decoder.close()
        assert report.state is DecodeState.FAILED
        assert "Skipping" in decoder.sink.err.getvalue()


def backend_untouched(decoder):
    return not decoder.backend.decompilers


class TestPause:
    def test_pause_then_resume_is_transparent(self, tmp_path):
        expected = make_decoder(make_backend(), tmp_path / "plain")
        expected.decode("app.apk")
        expected.close()

        decoder = make_decoder(make_backend(), tmp_path / "paused", pause_support=True,
                               monitor=ConsoleMonitor(io.StringIO("")))
        decoder.toggle_pause()
        assert decoder.tasks.paused
        result = {}
        worker = threading.Thread(target=lambda: result.update(report=decoder.decode("app.apk")))
        worker.start()
        worker.join(0.3)
        assert worker.is_alive()
        decoder.toggle_pause()
        worker.join(5)
        decoder.close()
        assert result["report"].state is DecodeState.DONE
        assert tree(tmp_path / "paused" / "app.apk_sources") == tree(tmp_path / "plain" / "app.apk_sources")
        output = decoder.sink.out.getvalue()
        assert "Paused... press ENTER to resume" in output
        assert "Memory: [" in output
        assert "Resumed..." in output

    def test_toggle_without_support_keeps_running(self, tmp_path):
        decoder = make_decoder(make_backend(), tmp_path)
        decoder.toggle_pause()
        assert not decoder.tasks.paused
        decoder.close()

    def test_prompt_answers_never_toggle_pause(self, tmp_path):
        read_fd, write_fd = os.pipe()
        decoder = DexFileDecoder(make_backend(), str(tmp_path), thread_count=2, pause_support=True,
                                 sink=make_sink(), monitor=ConsoleMonitor(os.fdopen(read_fd, "r")))
        decoder.decode_java = True
        ask = decoder.prompt

        def answer_yes(directory, merge_allowed):
            # typed shortly after the question shows, on the same stdin the monitor listens to
            threading.Timer(0.2, os.write, (write_fd, b"y\n")).start()
            return ask(directory, merge_allowed)

        decoder.prompt = answer_yes
        try:
            for name in ("one.apk", "two.apk"):
                out = tmp_path / f"{name}_sources"
                out.mkdir()
                (out / "stale.java").write_text("old")
                result = {}
                worker = threading.Thread(target=lambda n=name: result.update(report=decoder.decode(n)),
                                          daemon=True)
                worker.start()
                worker.join(5)
                assert not worker.is_alive()
                assert result["report"].state is DecodeState.DONE
                assert not decoder.tasks.paused
                assert not (out / "stale.java").exists()
            assert decoder.monitor.started
        finally:
            os.close(write_fd)
            decoder.close()

    def test_monitor_starts_only_after_output_is_resolved(self, tmp_path):
        (tmp_path / "app.apk_sources").mkdir()
        monitor = ConsoleMonitor(io.StringIO(""))
        decoder = make_decoder(make_backend(), tmp_path, pause_support=True, monitor=monitor)
        assert decoder.decode("app.apk").state is DecodeState.SKIPPED
        assert not monitor.started
        decoder.close()

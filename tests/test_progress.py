"""진행 모니터 테스트"""

import subprocess

from pg_migration.progress import (
    FileSizeSignal,
    LogTailSignal,
    ProgressMonitor,
    truncate_line,
)


def test_truncate_line():
    assert truncate_line("short") == "short"
    long_line = "x" * 100
    assert truncate_line(long_line) == "x" * 67 + "..."
    assert len(truncate_line(long_line, width=20)) == 20


class TestFileSizeSignal:
    def test_missing_file(self, tmp_path):
        assert FileSizeSignal(tmp_path / "none.dump").read() is None

    def test_reports_size(self, tmp_path):
        path = tmp_path / "a.dump"
        path.write_bytes(b"\0" * 5 * 1024 * 1024)
        signal = FileSizeSignal(path)
        assert signal.read() == "Dumping... 5.0MB written"
        assert signal.last_size == 5 * 1024 * 1024


class TestLogTailSignal:
    def test_holds_back_partial_line(self, tmp_path):
        log = tmp_path / "restore.log"
        signal = LogTailSignal(log)
        assert signal.read() is None

        log.write_text("pg_restore: connecting to database\npg_restore: processing da")
        assert signal.read() == "pg_restore: connecting to database"

        with open(log, "a") as f:
            f.write("ta for table \"public.users\"\n\n")
        assert signal.read() == 'pg_restore: processing data for table "public.users"'
        assert signal.line_count == 2

    def test_keeps_last_line_without_new_output(self, tmp_path):
        log = tmp_path / "restore.log"
        log.write_text("pg_restore: creating TABLE \"public.orders\"\n")
        signal = LogTailSignal(log)
        first = signal.read()
        assert signal.read() == first

    def test_truncates_long_lines(self, tmp_path):
        log = tmp_path / "restore.log"
        log.write_text("pg_restore: " + "y" * 200 + "\n")
        assert len(LogTailSignal(log, width=40).read()) == 40


class TestProgressMonitor:
    def test_exits_on_its_own_when_child_exits(self, tmp_path, quiet_console):
        path = tmp_path / "a.dump"
        path.write_bytes(b"\0" * 2048)
        monitor = ProgressMonitor(
            FileSizeSignal(path), interval=0.05, description="Dumping...", output=quiet_console
        )
        process = subprocess.Popen(["sleep", "0.3"])

        monitor.start(process)
        process.wait()
        monitor._thread.join(timeout=5)

        assert not monitor.running
        assert monitor.latest == "Dumping... 2.0KB written"

    def test_stop_ends_polling(self, tmp_path, quiet_console):
        monitor = ProgressMonitor(
            LogTailSignal(tmp_path / "r.log"), interval=0.05, description="Restoring...", output=quiet_console
        )
        process = subprocess.Popen(["sleep", "5"])
        try:
            monitor.start(process)
            assert monitor.running
            monitor.stop()
            assert not monitor.running
            # 모니터는 자식 프로세스에 관여하지 않음
            assert process.poll() is None
            assert monitor.latest == "Restoring..."
        finally:
            process.kill()
            process.wait()

import logging

from dbdump.logger import setup_console_logging, setup_logging


def _flush():
    for handler in logging.getLogger().handlers:
        handler.flush()


class TestSetupLogging:
    def test_oversized_log_is_moved_aside(self, tmp_path):
        log = tmp_path / "backup.log"
        log.write_text("previous run\n" * 50)

        setup_logging(log, max_bytes=500)

        old = tmp_path / "backup.log.old"
        assert old.exists()
        assert old.read_text().startswith("previous run")
        assert "previous run" not in log.read_text()
        assert "Backup started" in log.read_text()

    def test_small_log_is_appended(self, tmp_path):
        log = tmp_path / "backup.log"
        log.write_text("previous run\n")

        setup_logging(log)

        assert not (tmp_path / "backup.log.old").exists()
        assert log.read_text().startswith("previous run\n")

    def test_creates_missing_directory(self, tmp_path):
        log = tmp_path / "nested" / "logs" / "backup.log"
        setup_logging(log)
        assert log.exists()

    def test_file_receives_debug(self, tmp_path):
        log = tmp_path / "backup.log"
        setup_logging(log, verbose=False)

        logging.getLogger("dbdump.test").debug("details for the file only")
        _flush()

        assert "details for the file only" in log.read_text()

    def test_errors_go_to_stderr(self, tmp_path, capsys):
        setup_logging(tmp_path / "backup.log")

        logging.getLogger("dbdump.test").info("progress line")
        logging.getLogger("dbdump.test").error("something broke")
        logging.getLogger("dbdump.test").debug("quiet detail")

        out, err = capsys.readouterr()
        assert "progress line" in out
        assert "something broke" in err
        assert "something broke" not in out
        assert "quiet detail" not in out

    def test_verbose_shows_debug_on_console(self, tmp_path, capsys):
        setup_logging(tmp_path / "backup.log", verbose=True)
        logging.getLogger("dbdump.test").debug("quiet detail")
        assert "quiet detail" in capsys.readouterr().out

    def test_repeated_setup_does_not_duplicate_output(self, tmp_path, capsys):
        setup_logging(tmp_path / "backup.log")
        setup_logging(tmp_path / "backup.log")
        capsys.readouterr()

        logging.getLogger("dbdump.test").info("once")

        assert capsys.readouterr().out.count("once") == 1


class TestConsoleLogging:
    def test_no_file_handler(self):
        root = setup_console_logging()
        assert root is logging.getLogger()
        assert not any(isinstance(h, logging.FileHandler) for h in root.handlers)

    def test_streams_split_at_error(self, capsys):
        setup_console_logging()

        logging.getLogger("dbdump.test").info("discovered 2 containers")
        logging.getLogger("dbdump.test").error("docker unreachable")

        out, err = capsys.readouterr()
        assert "discovered 2 containers" in out
        assert "docker unreachable" in err
        assert "docker unreachable" not in out

    def test_replaces_file_logging(self, tmp_path):
        setup_logging(tmp_path / "backup.log")
        setup_console_logging()
        assert not any(isinstance(h, logging.FileHandler) for h in logging.getLogger().handlers)

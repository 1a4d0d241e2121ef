# tests/parallel_progress/test_logger.py
from pathlib import Path
import logging
from logging import FileHandler, StreamHandler
from logging.handlers import RotatingFileHandler

import pytest

from parallel_progress.logger import setup_logger

pytestmark = pytest.mark.usefixtures("clean_root_handlers")


@pytest.fixture()
def clean_root_handlers():
    """Start each test with a clean root logger; restore afterwards."""
    root = logging.getLogger()
    prev_handlers = list(root.handlers)
    prev_level = root.level

    def _drop_all():
        for h in list(root.handlers):
            root.removeHandler(h)
            try:
                h.close()
            except Exception:
                pass

    try:
        _drop_all()
        yield
    finally:
        _drop_all()
        for h in prev_handlers:
            root.addHandler(h)
        root.setLevel(prev_level)


def _handler_types():
    return {type(h) for h in logging.getLogger().handlers}


def test_log_file_records_worker_process_name(tmp_path: Path):
    log_path = setup_logger(tmp_path / "logs", force=True)
    assert log_path.parent == tmp_path / "logs"
    assert log_path.name.startswith("parallel_progress_")
    assert log_path.suffix == ".log"

    logging.getLogger("parallel_progress.test").info("aggregator up")
    text = log_path.read_text(encoding="utf-8")
    assert "Logging to:" in text
    assert "aggregator up" in text
    assert "MainProcess" in text


def test_dotted_directory_name_is_used_as_a_directory(tmp_path: Path):
    target = tmp_path / "run.logs"

    log_path = setup_logger(target, filename_prefix="demo", force=True)
    assert target.is_dir()
    assert log_path.parent == target
    assert log_path.name.startswith("demo_")
    assert list(tmp_path.iterdir()) == [target]


def test_level_filters_debug(tmp_path: Path):
    log_path = setup_logger(tmp_path, level=logging.WARNING, force=True)
    log = logging.getLogger("parallel_progress.test")
    log.info("quiet")
    log.warning("loud")

    text = log_path.read_text(encoding="utf-8")
    assert "loud" in text
    assert "quiet" not in text


def test_console_and_rotation_handlers(tmp_path: Path):
    setup_logger(tmp_path, console=True, force=True)
    types1 = _handler_types()
    assert FileHandler in types1
    assert StreamHandler in types1

    log_path = setup_logger(tmp_path, rotate=True, max_bytes=1024, backup_count=1, force=True)
    types2 = _handler_types()
    assert types2 == {RotatingFileHandler}

    logging.getLogger().warning("rotate test")
    assert "rotate test" in log_path.read_text(encoding="utf-8")

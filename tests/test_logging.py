import logging

from staged_eval.utils.logging import configure_logging, get_logger


def _file_handlers():
    return [h for h in logging.getLogger("staged_eval").handlers if isinstance(h, logging.FileHandler)]


def test_configure_logging_adds_file_handler_once(tmp_path):
    before = _file_handlers()
    log_file = tmp_path / "logs" / "eval.log"
    try:
        configure_logging("DEBUG", log_file)
        configure_logging("INFO", log_file)
        configure_logging("INFO", tmp_path / "logs" / ".." / "logs" / "eval.log")

        added = [h for h in _file_handlers() if h not in before]
        assert len(added) == 1
        assert logging.getLogger("staged_eval").level == logging.INFO

        get_logger("staged_eval.tests").info("written once")
        added[0].flush()
        assert log_file.read_text().count("written once") == 1
    finally:
        for handler in _file_handlers():
            if handler not in before:
                logging.getLogger("staged_eval").removeHandler(handler)
                handler.close()

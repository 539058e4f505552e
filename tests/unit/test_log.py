import logging

from gymreg.log import get_logger, log_summary, setup_logging


def test_lines_carry_level_labels(capsys):
    setup_logging()
    logging.getLogger("gymreg.extract").info("extracted %d rows", 3)
    logging.getLogger("gymreg.store").warning("batch failed")
    log_summary("members=2")
    out = capsys.readouterr().out.splitlines()
    assert out == ["INFO extracted 3 rows", "WARN batch failed", "SUMMARY members=2"]


def test_debug_is_hidden_unless_enabled(capsys):
    setup_logging()
    logging.getLogger("gymreg.cells").debug("noise")
    assert capsys.readouterr().out == ""

    setup_logging(debug=True)
    logging.getLogger("gymreg.cells").debug("noise")
    assert capsys.readouterr().out == "DEBUG noise\n"


def test_setup_is_idempotent():
    a = setup_logging()
    b = setup_logging()
    assert a is b is get_logger()
    assert len(a.handlers) == 1
    assert a.propagate is False

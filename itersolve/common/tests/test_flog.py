import logging

from itersolve.common.flog import Logger, Colors, get_global_logger

class _Collect(logging.Handler):
    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.records = []

    def emit(self, record):
        self.records.append(record)

def _logger_with_collector(name, lvl):
    logger  = Logger(name, lvl=lvl)
    handler = _Collect()
    logger.logger.addHandler(handler)
    return logger, handler

class TestLogger:

    def test_indentation(self):
        assert Logger.print_tab(0) == ''
        assert Logger.print_tab(2) == '\t\t->'
        assert Logger.print("msg", 1) == '\t->msg'

    def test_colors(self):
        assert Colors('red')('x') == '\033[31mx\033[0m'
        assert str(Colors('unknown')) == Colors.white
        assert Logger.colorize('plain', None) == 'plain'
        assert Logger.colorize('plain', 'white') == 'plain'

    def test_say_joins_and_filters(self):
        logger, handler = _logger_with_collector("itersolve.test.say", logging.INFO)
        logger.say("first", "second", log='info')
        logger.say("hidden", log='debug')
        logger.say("quiet", verbose=False)
        assert len(handler.records) == 1
        assert handler.records[0].getMessage() == "first\nsecond"

        logger.say("a", "b", end=False, lvl=1)
        assert handler.records[-1].getMessage() == "\t->a b"

    def test_levels_by_name(self):
        logger, handler = _logger_with_collector("itersolve.test.levels", 'warning')
        logger.info("no")
        logger.warning("yes")
        logger.error("also")
        assert [r.levelno for r in handler.records] == [logging.WARNING, logging.ERROR]

    def test_title(self):
        logger, handler = _logger_with_collector("itersolve.test.title", logging.INFO)
        logger.title("CG", desired_size=10, fill='=')
        assert handler.records[-1].getMessage() == "====CG===="

    def test_recreated_logger_does_not_duplicate_handlers(self):
        Logger("itersolve.test.dup")
        logger = Logger("itersolve.test.dup")
        assert len(logger.logger.handlers) == 1

    def test_file_logging(self, tmp_path):
        logger = Logger("itersolve.test.file")
        logger.configure(str(tmp_path), "run")
        logger.info(Colors('green')("to file"))
        for h in logger.logger.handlers:
            h.flush()
        content = (tmp_path / "run.log").read_text(encoding='utf-8')
        assert "to file" in content
        assert "\033[" not in content

    def test_global_logger_is_shared(self):
        assert get_global_logger() is get_global_logger()

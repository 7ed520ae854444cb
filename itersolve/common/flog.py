'''
Console and file logging for the iterative solvers.

A thin wrapper around the standard `logging` module: one stdout handler per named
logger, indentation levels for nested messages, optional ANSI colors and an
optional log file.

@note File logging is switched on by setting the environment variable PYLOGFILE to a non-zero value.
@note Colored output is switched off by setting the environment variable PYLOGCOLORS to '0'.

-------------------------------------------------------
file        :   itersolve/common/flog.py
description :   Logger with verbosity control used by solvers and preconditioners.
-------------------------------------------------------
'''

__all__         = [
    "Logger",
    "Colors",
    "get_global_logger"
]

import os
import re
import sys
import logging
import threading
from datetime import datetime
from typing import Optional, Union

# the accelerator stack is chatty on INFO
logging.getLogger("jax").setLevel(logging.WARNING)

ENV_LOGGER_FILE     = 'PYLOGFILE'
ENV_LOGGER_COLORS   = 'PYLOGCOLORS'
ENV_BACKEND_INFO    = 'PY_BACKEND_INFO'

######################################################
#! COLORS
######################################################

class Colors:
    """
    ANSI escape codes for console colors.
    """

    black   = "\033[30m"
    red     = "\033[31m"
    green   = "\033[32m"
    yellow  = "\033[33m"
    blue    = "\033[34m"
    white   = "\033[0m"  # reset

    def __init__(self, color : str):
        self.color = color

    def __str__(self) -> str:
        mapping = {
            "black" : Colors.black,
            "red"   : Colors.red,
            "green" : Colors.green,
            "yellow": Colors.yellow,
            "blue"  : Colors.blue,
        }
        return mapping.get(self.color, Colors.white)

    def __call__(self, text: str) -> str:
        return f"{self}{text}{Colors.white}"

# CSI color sequences: ESC [ ... m
_ansi_escape = re.compile(r'\x1b\[[0-9;]*m')

class StripAnsiFormatter(logging.Formatter):
    ''' Formatter for files: drops the color codes from the formatted record. '''

    def format(self, record):
        return _ansi_escape.sub('', super().format(record))

######################################################
#! LOGGER
######################################################

class Logger:
    """
    Logger class for console and file logging with verbosity control.

    Example
    -------
        >>> logger = Logger("itersolve.cg")
        >>> logger.info("Starting CG", lvl=1)
        >>> logger.say("res=1e-3", "res=1e-6", log='debug', lvl=2)
    """

    LEVELS = {
        logging.DEBUG   : 'debug',
        logging.INFO    : 'info',
        logging.WARNING : 'warning',
        logging.ERROR   : 'error'
    }

    LEVELS_R = {v: k for k, v in LEVELS.items()}

    def __init__(self,
                name            : str           = "itersolve",
                logfile         : Optional[str] = None,
                lvl             : Union[int, str] = logging.INFO,
                use_ts_in_cmd   : bool          = False):
        """
        Initialize the logger instance.

        Args:
            name (str):
                Name of the underlying `logging.Logger`.
            logfile (str):
                Base name of the log file. Used only when PYLOGFILE is set;
                an empty string means a timestamp.
            lvl (int | str):
                Logging level (default: logging.INFO).
            use_ts_in_cmd (bool):
                Whether to show a timestamp in console output.
        """
        self.now                = datetime.now()
        self.now_str            = self.now.strftime("%d_%m_%Y_%H-%M_%S")
        self.lvl                = Logger.LEVELS_R.get(lvl, logging.INFO) if isinstance(lvl, str) else lvl
        self.has_colors         = sys.stdout.isatty() and os.environ.get(ENV_LOGGER_COLORS, '1') != '0'
        self.logfile            = None

        self.logger             = logging.getLogger(name)
        self.logger.setLevel(self.lvl)
        self.logger.propagate   = False

        # a logger re-created under the same name must not print twice
        for h in list(self.logger.handlers):
            self.logger.removeHandler(h)
            h.close()

        console_fmt = '%(asctime)s [%(levelname)s] %(message)s' if use_ts_in_cmd else '[%(levelname)s] %(message)s'
        ch          = logging.StreamHandler(sys.stdout)
        ch.setLevel(self.lvl)
        ch.setFormatter(logging.Formatter(console_fmt, datefmt="%d_%m_%Y_%H-%M_%S"))
        self.logger.addHandler(ch)

        if logfile is not None and os.environ.get(ENV_LOGGER_FILE, '0') != '0':
            self.configure("./log", logfile)

    # --------------------------------------------------------------

    @staticmethod
    def colorize(txt: str, color: Optional[str]):
        """
        Wrap the text in the given color (no-op for 'white' or None).
        """
        if not color or color.lower() == 'white':
            return str(txt)
        return Colors(color.lower())(str(txt))

    # --------------------------------------------------------------

    def configure(self, directory: str, logfile: str = ""):
        """
        Attach a file handler writing to `directory/<logfile>.log`.

        Args:
            directory (str):
                Directory for the log file, created if missing.
            logfile (str):
                Base name; the creation timestamp when empty.
        """
        base_name       = logfile[:-4] if logfile.endswith('.log') else logfile
        base_name       = base_name if len(base_name) > 0 else self.now_str
        os.makedirs(directory, exist_ok=True)
        self.logfile    = os.path.join(directory, f'{base_name}.log')

        fh              = logging.FileHandler(self.logfile, encoding='utf-8')
        fh.setLevel(self.lvl)
        fh.setFormatter(StripAnsiFormatter('%(asctime)s [%(levelname)s] %(message)s', datefmt="%d_%m_%Y_%H-%M-%S"))
        self.logger.addHandler(fh)
        self.info(f"Log file created: {self.logfile}")

    # --------------------------------------------------------------

    @staticmethod
    def print_tab(lvl=0):
        """
        Indentation prefix for nested messages.
        """
        return '\t' * lvl + ('->' if lvl > 0 else '')

    @staticmethod
    def print(msg: str, lvl=0):
        """
        Format a message with its indentation prefix.
        """
        return f"{Logger.print_tab(lvl)}{msg}"

    # --------------------------------------------------------------

    def say(self, *args, end=True, log=logging.INFO, lvl=0, verbose=True, color=None):
        """
        Log several messages at once if verbosity is enabled.

        Args:
            *args: Messages to log.
            end (bool)      : Join with newlines (True) or spaces (False).
            log (int | str) : Log level, a `logging` constant or its name.
            lvl (int)       : Indentation level.
            verbose (bool)  : Log if True (default: True).
        """
        if isinstance(log, str):
            log = Logger.LEVELS_R.get(log.lower(), logging.DEBUG)

        if not verbose or log < self.lvl:
            return

        messages            = [str(arg) for arg in args]
        combined_message    = '\n'.join(messages) if end else ' '.join(messages)
        if color is not None and self.has_colors:
            combined_message = self.colorize(combined_message, color)
        self._log_message(log, combined_message, lvl)

    def _log_message(self, log_level, msg, lvl = 0):
        log_function = getattr(self.logger, self.LEVELS.get(log_level, 'info'))
        log_function(Logger.print(msg, lvl))

    # --------------------------------------------------------------

    def info(self, msg: str, lvl=0, verbose=True, color=None):
        ''' Log an informational message. '''
        if not verbose:
            return
        if color is not None and self.has_colors:
            msg = self.colorize(msg, color)
        self.logger.info(Logger.print(msg, lvl))

    def debug(self, msg: str, lvl=0, verbose=True, color=None):
        ''' Log a debug message. '''
        if not verbose:
            return
        if color is not None and self.has_colors:
            msg = self.colorize(msg, color)
        self.logger.debug(Logger.print(msg, lvl))

    def warning(self, msg: str, lvl=0, verbose=True, color='yellow'):
        ''' Log a warning, yellow on a terminal. '''
        if not verbose:
            return
        if self.has_colors:
            msg = self.colorize(msg, color)
        self.logger.warning(Logger.print(msg, lvl))

    def error(self, msg: str, lvl=0, verbose=True, color='red'):
        ''' Log an error, red on a terminal. '''
        if not verbose:
            return
        if self.has_colors:
            msg = self.colorize(msg, color)
        self.logger.error(Logger.print(msg, lvl))

    warn = warning

    # --------------------------------------------------------------

    def title(self, tail: str, desired_size: int=50, fill: str = '=', lvl=0, verbose=True, color=None):
        """
        Log a centered title padded with `fill`.

        Args:
            tail (str):
                Text in the middle of the title.
            desired_size (int):
                Total width of the title.
            fill (str):
                Character used for padding.
        """
        if not verbose:
            return
        if len(tail) + 2 + lvl * 6 > desired_size:
            self.info(tail, lvl, verbose)
            return

        fill_size   = (desired_size - len(tail)) // (2 * len(fill))
        out         = (fill * fill_size) + tail + (fill * fill_size)
        if len(out) < desired_size:
            out    += fill[0] * (desired_size - len(out))
        self.info(out[:desired_size], lvl, verbose, color)

######################################################
#! GLOBAL LOGGER
######################################################

_G_LOGGER     = None
_G_LOGGER_PID = None
_G_LOCK       = threading.Lock()

def get_global_logger(**kwargs) -> Logger:
    """
    One Logger per process (PID), safe across threads and forks.

    Args:
        **kwargs: Passed to the Logger constructor on first use.
        - name (str): Name of the logger (default: "itersolve").
        - lvl (int): Logging level (default: logging.INFO).
        - logfile (str or None): Base name of a log file (default: None).

    Returns:
        Logger: The process-wide logger.

    Example
    -------
        >>> logger = get_global_logger()
        >>> logger.info("Krylov matrix built", lvl=1)
    """
    global  _G_LOGGER, _G_LOGGER_PID
    pid     = os.getpid()

    if _G_LOGGER is not None and _G_LOGGER_PID == pid:
        return _G_LOGGER

    with _G_LOCK:
        if _G_LOGGER is not None and _G_LOGGER_PID == pid:
            return _G_LOGGER

        logger = Logger(
            name            = kwargs.get("name",            "itersolve"),
            lvl             = kwargs.get("lvl",             logging.INFO),
            use_ts_in_cmd   = kwargs.get("use_ts_in_cmd",   True),
            logfile         = kwargs.get("logfile",         None),
        )
        if os.environ.get(ENV_BACKEND_INFO, "0") != "0":
            logger.title("itersolve logger initialized", 50, '#', 0)

        _G_LOGGER       = logger
        _G_LOGGER_PID   = pid
        return _G_LOGGER

######################################################
#! EOF
######################################################

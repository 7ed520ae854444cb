"""
Common utilities shared by the solvers: logging and timing.

Example:
    >>> from itersolve.common import get_global_logger, Timer
    >>> logger = get_global_logger()
    >>> t = Timer("solve").start()
    >>> t.stop()
"""

import  importlib
from    typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .flog          import Logger, Colors, get_global_logger
    from .timer         import Timer

# Lazy loading registry
_LAZY_IMPORTS = {
    'Logger'                    : ('.flog', 'Logger'),
    'Colors'                    : ('.flog', 'Colors'),
    'get_global_logger'         : ('.flog', 'get_global_logger'),
    'Timer'                     : ('.timer', 'Timer'),
}

def __getattr__(name: str):
    if name in _LAZY_IMPORTS:
        module_path, attr_name  = _LAZY_IMPORTS[name]
        module                  = importlib.import_module(module_path, package=__name__)
        return getattr(module, attr_name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

def __dir__():
    return sorted(list(globals().keys()) + list(_LAZY_IMPORTS.keys()))

__all__ = list(_LAZY_IMPORTS.keys())

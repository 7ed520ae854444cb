'''
Monotonic timer used for the elapsed-time entries of solver histories and
the duration reported in the solver log lines.

file    : itersolve/common/timer.py
'''

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple
import time

################################################################################
# High-precision, monotonic clock in nanoseconds
_now_ns: Callable[[], int] = time.perf_counter_ns

@dataclass(slots=True)
class Timer:
    """
    Monotonic timer measuring wall time since `start()`.

        >>> t = Timer("cg", unit="ms").start()
        >>> run()
        >>> t.stop()
        >>> t.format_elapsed()
        '12.345678 ms'

    Attributes:
        name (str):
            Optional name to identify the timer.
        unit (str):
            Unit used by `format_elapsed` ('auto', 's', 'ms', 'us', 'ns').
    """
    name                    : Optional[str]     = None
    unit                    : str               = "auto"

    # internal state
    _start_ns               : Optional[int]     = field(default=None, init=False)
    _elapsed_ns             : int               = field(default=0, init=False)

    ################################################################################

    def start(self) -> "Timer":
        """Start the timer; no-op if already running."""
        if self._start_ns is None:
            self._start_ns  = _now_ns()
        return self

    def stop(self) -> float:
        """Stop and return the elapsed time in seconds."""
        if self._start_ns is not None:
            self._elapsed_ns   += _now_ns() - self._start_ns
            self._start_ns      = None
        return self.elapsed_s()

    ################################################################################
    #! queries
    ################################################################################

    def elapsed_ns(self) -> int:
        """Total elapsed nanoseconds, including the running span."""
        if self._start_ns is None:
            return self._elapsed_ns
        return self._elapsed_ns + (_now_ns() - self._start_ns)

    def elapsed_s(self) -> float:
        """Elapsed seconds (float)."""
        return self.elapsed_ns() / 1e9

    ################################################################################
    #! formatting
    ################################################################################

    def _format_unit(self, seconds: float) -> Tuple[float, str]:
        if self.unit == "auto":
            if seconds >= 1.0:
                return (seconds, "s")
            if seconds * 1e3 >= 1.0:
                return (seconds * 1e3, "ms")
            if seconds * 1e6 >= 1.0:
                return (seconds * 1e6, "us")
            return (seconds * 1e9, "ns")
        scale = {"s": 1.0, "ms": 1e3, "us": 1e6, "ns": 1e9}
        if self.unit not in scale:
            raise ValueError("unit must be one of {'auto','s','ms','us','ns'}")
        return (seconds * scale[self.unit], self.unit)

    def format_elapsed(self) -> str:
        v, u = self._format_unit(self.elapsed_s())
        return f"{v:.6f} {u}"

################################################################################

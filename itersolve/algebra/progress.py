'''
file:       itersolve/algebra/progress.py

Advisory 0-100 progress meter for the iterative solvers, drawn with `tqdm`.

The meter of an iteration is the larger of two estimates:

    linear      100 * i / nsteps                                (iteration budget)
    logarithmic 100 ** min(1, log10(res/res0) / log10(tol/res0)) (tolerance)

and it never moves backwards. It has no effect on the solve. With `tol <= 0`
the tolerance is unreachable and only the linear estimate moves the meter.
'''

import math
from typing import Optional, Union

from tqdm import tqdm

# ---------------------------------------------------------------------

def progress_estimate(i: int, nsteps: int, res: float, res0: float, tol: float) -> int:
    '''
    Progress of iteration `i` of `nsteps` in percent, for the current
    convergence scalar `res` started at `res0` and aiming at `tol`.
    '''
    linear = round(100 * i / nsteps) if nsteps > 0 else 100

    if res <= 0.0 or res0 <= tol:
        logarithmic = 100
    elif tol <= 0.0:
        # log10(tol/res0) is -inf, the ratio goes to 0
        logarithmic = 1
    else:
        ratio       = math.log10(res / res0) / math.log10(tol / res0)
        logarithmic = round(100 ** min(1.0, ratio))
    return int(min(100, max(linear, logarithmic)))

# ---------------------------------------------------------------------

class SolverProgress:
    """
    Monotone progress bar with total 100.

    Args:
        enabled (bool | str):
            False for no output; True or a label string to draw the bar,
            the label being the bar's description.
        default_label (str):
            Description used when `enabled` is True.
    """

    def __init__(self, enabled: Union[bool, str] = False, default_label: str = "Solving"):
        self._label     : Optional[str] = None
        self._bar                       = None
        self._value     : int           = 0
        if enabled:
            self._label = enabled if isinstance(enabled, str) else default_label
            self._bar   = tqdm(total=100, desc=self._label, leave=False)

    @property
    def enabled(self) -> bool:
        return self._bar is not None

    @property
    def label(self) -> Optional[str]:
        return self._label

    @property
    def value(self) -> int:
        return self._value

    def update(self, value: int) -> int:
        '''
        Move the meter to `value` if that is an advance. Returns the meter.
        '''
        value = int(min(100, value))
        if value > self._value:
            if self._bar is not None:
                self._bar.update(value - self._value)
            self._value = value
        return self._value

    def finish(self) -> None:
        self.update(100)
        self.close()

    def close(self) -> None:
        if self._bar is not None:
            self._bar.close()
            self._bar = None

    def __enter__(self) -> "SolverProgress":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

# ---------------------------------------------------------------------
#! EOF
# ---------------------------------------------------------------------

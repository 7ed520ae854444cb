'''
file:       itersolve/algebra/history.py

Per-iteration diagnostics of the iterative solvers.

A solver is handed the set of fields the caller wants (`hist=['i', 'res']`)
and a stride (`histmod`). It records the initial state unconditionally and
afterwards every iteration `i` with `i % stride == 0`. Each snapshot is a
`dict` keyed by the short field names below:

    i       iteration index
    x       current solution
    r       current residual vector
    res     convergence scalar <r, M^{-1} r>
    t       elapsed seconds since the start of the solve
    p       current search direction

Vectors are stored by reference; the solvers update them out of place, so a
snapshot never changes after it was taken.
'''

import operator
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

# ---------------------------------------------------------------------

class HistoryField(Enum):
    ITERATION           = "i"
    SOLUTION            = "x"
    RESIDUAL            = "r"
    CONVERGENCE_SCALAR  = "res"
    ELAPSED             = "t"
    DIRECTION           = "p"

    @property
    def key(self) -> str:
        return self.value

    @classmethod
    def _from_one(cls, item: Union[str, "HistoryField"]) -> "HistoryField":
        if isinstance(item, cls):
            return item
        if not isinstance(item, str):
            raise TypeError(f"History field must be a string or HistoryField, got {type(item)}.")
        name = item.strip()
        for member in cls:
            if name == member.value:
                return member
        name = name.upper().replace('-', '_').replace(' ', '_')
        name = _HISTORY_ALIASES.get(name, name)
        if name in cls.__members__:
            return cls[name]
        raise ValueError(f"Unknown history field: '{item}'. Valid: {[m.value for m in cls]}.")

    @classmethod
    def parse(cls, spec: Union[str, "HistoryField", Iterable[Union[str, "HistoryField"]]]) -> List["HistoryField"]:
        '''
        Normalize a field specification to a list of members.

        Accepts a single name ('res', 'residual', ...), a member, or an
        iterable of them. Order is preserved and duplicates are dropped.
        '''
        items   = [spec] if isinstance(spec, (str, cls)) else list(spec)
        out     = []
        for item in items:
            member = cls._from_one(item)
            if member not in out:
                out.append(member)
        return out

_HISTORY_ALIASES = {
    'ITERATIONS'        : 'ITERATION',
    'RESIDUAL_VECTOR'   : 'RESIDUAL',
    'RESIDUALVECTOR'    : 'RESIDUAL',
    'CONVERGENCESCALAR' : 'CONVERGENCE_SCALAR',
    'ELAPSED_SECONDS'   : 'ELAPSED',
    'ELAPSEDSECONDS'    : 'ELAPSED',
    'TIME'              : 'ELAPSED',
}

# ---------------------------------------------------------------------

class HistoryRecorder:
    """
    Collects snapshots of the requested fields every `stride` iterations.

    Example
    -------
        >>> rec = HistoryRecorder(['i', 'res'], stride=2)
        >>> rec.record_first(i=0, res=1.0, x=x0)
        >>> rec.record(2, i=2, res=0.1, x=x2)
        >>> rec.column('res')
        [1.0, 0.1]
    """

    def __init__(self, fields: Any, stride: int = 1):
        stride = operator.index(stride)
        if stride < 1:
            raise ValueError(f"History stride must be >= 1, got {stride}.")
        self._fields    : List[HistoryField]    = HistoryField.parse(fields)
        self._stride    : int                   = stride
        self._snapshots : List[Dict[str, Any]]  = []

    # -----------------------------------------------------------------

    @property
    def fields(self) -> List[HistoryField]:
        return list(self._fields)

    @property
    def stride(self) -> int:
        return self._stride

    @property
    def snapshots(self) -> List[Dict[str, Any]]:
        return self._snapshots

    # -----------------------------------------------------------------

    def should_record(self, i: int) -> bool:
        return i % self._stride == 0

    def _take(self, state: Dict[str, Any]) -> Dict[str, Any]:
        missing = [f.key for f in self._fields if f.key not in state]
        if missing:
            raise KeyError(f"Solver state lacks history fields {missing}.")
        return {f.key: state[f.key] for f in self._fields}

    def record_first(self, **state) -> None:
        ''' Record unconditionally (the initial state). '''
        self._snapshots.append(self._take(state))

    def record(self, it: int, /, **state) -> bool:
        '''
        Record the state of iteration `it` if `it` falls on the stride. The
        state may itself carry an `i` entry.

        Returns:
            bool: whether a snapshot was taken.
        '''
        if not self.should_record(it):
            return False
        self._snapshots.append(self._take(state))
        return True

    def column(self, field: Union[str, HistoryField]) -> List[Any]:
        ''' Values of one field across all snapshots. '''
        key = HistoryField._from_one(field).key
        if HistoryField._from_one(field) not in self._fields:
            raise KeyError(f"Field '{key}' was not recorded.")
        return [snap[key] for snap in self._snapshots]

    # -----------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._snapshots)

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        return iter(self._snapshots)

    def __getitem__(self, idx):
        return self._snapshots[idx]

    def __repr__(self) -> str:
        return f"HistoryRecorder(fields={[f.key for f in self._fields]}, stride={self._stride}, n={len(self)})"

# ---------------------------------------------------------------------
#! EOF
# ---------------------------------------------------------------------

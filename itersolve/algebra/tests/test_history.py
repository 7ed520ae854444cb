import pytest
import numpy as np

from itersolve.algebra.history import HistoryField, HistoryRecorder

class TestHistoryField:

    @pytest.mark.parametrize("name, member", [
        ("i",                   HistoryField.ITERATION),
        ("iteration",           HistoryField.ITERATION),
        ("x",                   HistoryField.SOLUTION),
        ("solution",            HistoryField.SOLUTION),
        ("r",                   HistoryField.RESIDUAL),
        ("residualVector",      HistoryField.RESIDUAL),
        ("res",                 HistoryField.CONVERGENCE_SCALAR),
        ("convergence_scalar",  HistoryField.CONVERGENCE_SCALAR),
        ("t",                   HistoryField.ELAPSED),
        ("elapsedSeconds",      HistoryField.ELAPSED),
        ("p",                   HistoryField.DIRECTION),
    ])
    def test_parse_names(self, name, member):
        assert HistoryField.parse(name) == [member]

    def test_parse_keeps_order_and_drops_duplicates(self):
        fields = HistoryField.parse(["res", "i", "convergence_scalar", HistoryField.SOLUTION])
        assert [f.key for f in fields] == ["res", "i", "x"]

    def test_parse_rejects_unknown(self):
        with pytest.raises(ValueError):
            HistoryField.parse("bogus")
        with pytest.raises(TypeError):
            HistoryField.parse([3])

class TestHistoryRecorder:

    def test_stride_validation(self):
        with pytest.raises(ValueError):
            HistoryRecorder("res", stride=0)
        with pytest.raises(TypeError):
            HistoryRecorder("res", stride=1.5)

    def test_first_entry_and_stride(self):
        rec = HistoryRecorder(["i", "res"], stride=2)
        rec.record_first(i=0, res=1.0, x=np.zeros(2))
        taken = [rec.record(i, i=i, res=1.0 / (i + 1), x=np.zeros(2)) for i in range(1, 6)]

        assert taken == [False, True, False, True, False]
        assert len(rec) == 3
        assert rec.column("i") == [0, 2, 4]
        assert rec.column("convergence_scalar") == pytest.approx([1.0, 1.0 / 3.0, 1.0 / 5.0])
        assert set(rec[0].keys()) == {"i", "res"}
        assert list(rec) == rec.snapshots

    def test_unrecorded_column_and_missing_state(self):
        rec = HistoryRecorder("res")
        rec.record_first(res=2.0)
        with pytest.raises(KeyError):
            rec.column("x")
        with pytest.raises(KeyError):
            rec.record(1, i=1)


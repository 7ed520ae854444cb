import pytest

from itersolve.common.timer import Timer

class TestTimer:

    def test_start_stop(self):
        t = Timer("cg")
        assert t.elapsed_ns() == 0
        t.start()
        first = t.elapsed_s()
        assert t.elapsed_s() >= first >= 0.0
        total = t.stop()
        assert total == t.elapsed_s()
        # stopped timer no longer advances
        assert t.elapsed_s() == total

    def test_restart_accumulates(self):
        t = Timer().start()
        first = t.stop()
        t.start()
        assert t.stop() >= first

    def test_units(self):
        t = Timer(unit="ms")
        assert t.format_elapsed() == "0.000000 ms"
        assert Timer().format_elapsed().endswith(" ns")
        with pytest.raises(ValueError):
            Timer(unit="weeks").format_elapsed()

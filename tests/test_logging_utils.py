import logging

import numpy as np
import pytest

from plot2vega.logging_utils import _safe_repr, debug_log_call
from plot2vega.projection import project_data

logger = logging.getLogger("plot2vega.tests")


def test_safe_repr_summarizes_arrays_and_long_sequences():
    assert _safe_repr(np.array([1.0, 3.0])) == "ndarray(shape=(2,), dtype=float64), min=1, max=3"
    assert _safe_repr(list(range(8))) == "[0, 1, 2, 3, 4, ... (8 items)]"
    assert _safe_repr(project_data([1], [2])).startswith("ProjectedData(rows=(DataRow(...)),")


def test_debug_log_call_logs_entry_and_exit(caplog):
    @debug_log_call(logger, name="double")
    def double(value):
        return value * 2

    with caplog.at_level(logging.DEBUG, logger="plot2vega.tests"):
        assert double(4) == 8

    messages = [record.getMessage() for record in caplog.records]
    assert messages[0] == "Entering double (args=[4])"
    assert messages[1].startswith("Exiting double after ")
    assert messages[1].endswith("-> 8")


def test_debug_log_call_reraises(caplog):
    @debug_log_call(logger)
    def broken():
        raise ValueError("boom")

    with caplog.at_level(logging.DEBUG, logger="plot2vega.tests"):
        with pytest.raises(ValueError, match="boom"):
            broken()

    assert any("Exception in" in record.getMessage() for record in caplog.records)

import logging

import numpy as np
import pytest

import hdrtmo
from hdrtmo.domain.interfaces import IProgress
from hdrtmo.kernel.image.logic import apply_pregamma, calculate_buffer_hash, float_to_uint8
from hdrtmo.kernel.image.validation import coerce_setting
from hdrtmo.kernel.system import performance
from hdrtmo.kernel.system.logging import get_logger, setup_logging
from hdrtmo.kernel.system.performance import time_function
from hdrtmo.kernel.system.progress import ProgressRange, ProgressToken


def test_version():
    assert isinstance(hdrtmo.__version__, str)
    assert hdrtmo.__version__.count(".") == 2


def test_logger_hierarchy():
    assert get_logger().name == "hdrtmo"
    assert get_logger("hdrtmo.features.curve.logic").name == "hdrtmo.features.curve.logic"
    assert get_logger("perf").name == "hdrtmo.perf"


def test_setup_logging_is_idempotent():
    logger = setup_logging(logging.DEBUG)
    count = len(logger.handlers)
    setup_logging(logging.DEBUG)
    assert len(logger.handlers) == count


def test_time_function_logs_perf(caplog):
    @time_function
    def work(x):
        return x + 1

    with caplog.at_level(logging.INFO, logger="hdrtmo.perf"):
        assert work(1) == 2
    assert any("PERF: work" in r.message for r in caplog.records)


def test_time_function_reports_frame_pixels(caplog):
    @time_function
    def stage(width, img):
        return img

    with caplog.at_level(logging.INFO, logger="hdrtmo.perf"):
        stage(7, np.zeros((6, 5, 3), dtype=np.float32))
    assert any("(30 px)" in r.message for r in caplog.records)


def test_perf_csv_writes_header_once(tmp_path, monkeypatch):
    path = tmp_path / "perf" / "stats.csv"
    monkeypatch.setattr(performance, "get_perf_log_path", lambda: str(path))
    performance.log_to_csv("density", 1.5, 100)
    performance.log_to_csv("curve", 2.25, None)

    lines = path.read_text().splitlines()
    assert lines[0] == "timestamp,stage,duration_ms,pixels"
    assert len(lines) == 3
    assert lines[1].endswith(",density,1.500,100")
    assert lines[2].endswith(",curve,2.250,")


def test_coerce_setting():
    assert coerce_setting("768", 1024) == 768
    assert coerce_setting("768.0", 1024) == 768
    assert coerce_setting("0.7", 1.0) == 0.7
    assert coerce_setting("abc", 1.0) == 1.0
    assert coerce_setting("Yes", False) is True
    assert coerce_setting("off", True) is False
    assert coerce_setting(None, 2.0) == 2.0
    assert coerce_setting("crt", "lcd") == "crt"


def test_progress_is_clamped_and_non_decreasing():
    seen = []
    token = ProgressToken(maximum=10, on_progress=seen.append)
    for v in (2, 5, 3, 50, -1):
        token.post_progress(v)

    assert seen == [2, 5, 10]
    assert token.value == 10


def test_termination_flag():
    token = ProgressToken()
    assert isinstance(token, IProgress)
    assert not token.is_termination_requested()
    token.request_termination()
    assert token.is_termination_requested()
    token.request_termination(False)
    assert not token.is_termination_requested()


def test_progress_range_maps_onto_parent():
    token = ProgressToken(maximum=100)
    sub = ProgressRange(token, 60, 80)
    sub.post_progress(50)
    assert token.value == 70

    nested = ProgressRange(sub, 0, 100)
    nested.post_progress(100)
    assert token.value == 80

    nested.request_termination()
    assert token.is_termination_requested()


def test_pregamma():
    img = np.array([[[0.25, 1.0, 4.0]]], dtype=np.float32)
    assert apply_pregamma(img, 1.0) is img
    out = apply_pregamma(img, 2.0)
    # Peak is preserved, darker values are lifted
    assert out[0, 0, 2] == pytest.approx(4.0)
    assert out[0, 0, 1] == pytest.approx(2.0)


def test_buffer_helpers():
    a = np.zeros((2, 2, 3), dtype=np.float32)
    assert calculate_buffer_hash(a) == calculate_buffer_hash(a.copy())
    assert calculate_buffer_hash(a) != calculate_buffer_hash(a + 1)
    assert float_to_uint8(np.array([0.0, 0.5, 1.0, 2.0])).tolist() == [0, 128, 255, 255]

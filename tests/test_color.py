import numpy as np
import pytest

from conftest import make_hdr_frame
from hdrtmo.domain.status import TmoStatus
from hdrtmo.features.color.logic import (
    LegacySaturation,
    Mantiuk09Saturation,
    apply_tone_curve,
    get_saturation_model,
)
from hdrtmo.features.color.models import ColorCorrection
from hdrtmo.features.curve.models import ToneCurve
from hdrtmo.features.density.logic import knot_grid
from hdrtmo.features.display.models import DisplayFunctionGGBA
from hdrtmo.kernel.image.logic import get_luminance
from hdrtmo.kernel.system.progress import ProgressToken


@pytest.fixture
def df():
    return DisplayFunctionGGBA.from_preset("lcd")


@pytest.fixture
def curve(df):
    x = knot_grid()
    y_min, y_max = df.log_range()
    tc = ToneCurve()
    tc.init(x.size, x)
    tc.y_i[:] = np.clip(0.5 * x + 1.0, y_min, y_max)
    return tc


def _planes(frame):
    return [np.ascontiguousarray(frame[..., c], dtype=np.float64) for c in range(3)]


def _apply(frame, tc, df, **kwargs):
    h, w = frame.shape[:2]
    r, g, b = _planes(frame)
    lum = get_luminance(frame).astype(np.float64)
    out = [np.zeros((h, w)) for _ in range(3)]
    status = apply_tone_curve(*out, w, h, r, g, b, lum, tc, df, **kwargs)
    return status, out


def test_grey_stays_grey(hdr_frame, curve, df):
    grey = np.repeat(get_luminance(hdr_frame)[..., None], 3, axis=-1)
    status, (r, g, b) = _apply(grey, curve, df)

    assert status == TmoStatus.OK
    np.testing.assert_allclose(r, g, atol=1e-6)
    np.testing.assert_allclose(g, b, atol=1e-6)
    assert r.min() >= 0.0 and r.max() <= 1.0


def test_zero_saturation_desaturates(hdr_frame, curve, df):
    status, (r, g, b) = _apply(
        hdr_frame, curve, df, saturation=0.0, correction=ColorCorrection.LEGACY
    )
    assert status == TmoStatus.OK
    np.testing.assert_allclose(r, b, atol=1e-9)


def test_outputs_may_alias_inputs(hdr_frame, curve, df):
    h, w = hdr_frame.shape[:2]
    _, expected = _apply(hdr_frame, curve, df, saturation=0.8)

    r, g, b = _planes(hdr_frame)
    lum = get_luminance(hdr_frame).astype(np.float64)
    status = apply_tone_curve(r, g, b, w, h, r, g, b, lum, curve, df, saturation=0.8)

    assert status == TmoStatus.OK
    for got, want in zip((r, g, b), expected):
        np.testing.assert_array_equal(got, want)


def test_flat_buffers_are_accepted(hdr_frame, curve, df):
    h, w = hdr_frame.shape[:2]
    r, g, b = (p.ravel() for p in _planes(hdr_frame))
    lum = get_luminance(hdr_frame).astype(np.float64).ravel()
    out = [np.zeros(w * h) for _ in range(3)]

    assert apply_tone_curve(*out, w, h, r, g, b, lum, curve, df) == TmoStatus.OK
    assert np.any(out[0] > 0)


def test_cancel_leaves_outputs_untouched(hdr_frame, curve, df):
    token = ProgressToken()
    token.request_termination()
    status, out = _apply(hdr_frame, curve, df, progress=token)

    assert status == TmoStatus.ABORTED
    assert all(np.all(o == 0) for o in out)


def test_cancel_between_row_blocks(curve, df):
    frame = make_hdr_frame(width=32, height=160)
    token = ProgressToken(on_progress=lambda v: token.request_termination())
    status, out = _apply(frame, curve, df, progress=token)

    assert status == TmoStatus.ABORTED
    # The first 64-row block was written, nothing after it
    assert np.any(out[1][:64] > 0)
    assert all(np.all(o[64:] == 0) for o in out)


def test_size_mismatch(hdr_frame, curve, df):
    h, w = hdr_frame.shape[:2]
    r, g, b = _planes(hdr_frame)
    lum = get_luminance(hdr_frame)
    out = [np.zeros((h, w)) for _ in range(3)]
    assert apply_tone_curve(*out, w + 1, h, r, g, b, lum, curve, df) == TmoStatus.ERROR


def test_empty_curve(hdr_frame, df):
    status, _ = _apply(hdr_frame, ToneCurve(), df)
    assert status == TmoStatus.ERROR


def test_negative_saturation(hdr_frame, curve, df):
    status, _ = _apply(hdr_frame, curve, df, saturation=-0.5)
    assert status == TmoStatus.ERROR


def test_mantiuk09_saturation_follows_slope():
    x = np.array([0.0, 1.0, 2.0])
    tc = ToneCurve()
    tc.init(3, x)
    tc.y_i[:] = [0.0, 1.0, 1.0]  # slope 1, then flat

    s = Mantiuk09Saturation().saturation(np.array([0.5, 1.5]), tc, 0.8)
    # Unit slope keeps the factor, a flat curve removes all colour
    assert s[0] == pytest.approx(0.8)
    assert s[1] == pytest.approx(0.0)


def test_saturation_model_lookup():
    assert isinstance(get_saturation_model("legacy"), LegacySaturation)
    assert isinstance(get_saturation_model(ColorCorrection.MANTIUK09), Mantiuk09Saturation)
    with pytest.raises(ValueError):
        get_saturation_model("vivid")


def test_unit_saturation_keeps_chroma_ratios(curve, df):
    # Moderate radiance so no channel clips at either end of the display
    rng = np.random.default_rng(3)
    lum = 10.0 ** rng.uniform(0.0, 0.8, size=(16, 16))
    frame = lum[..., None] * np.array([1.2, 1.0, 0.7])

    status, (r, g, b) = _apply(frame, curve, df, saturation=1.0, correction=ColorCorrection.LEGACY)
    assert status == TmoStatus.OK

    lr, lg, lb = (df.to_luminance(c) for c in (r, g, b))
    np.testing.assert_allclose(lr / lg, frame[..., 0] / frame[..., 1], rtol=1e-5)
    np.testing.assert_allclose(lb / lg, frame[..., 2] / frame[..., 1], rtol=1e-5)

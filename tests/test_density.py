import numpy as np
import pytest

from hdrtmo.domain.status import TmoStatus
from hdrtmo.features.density.logic import compute_conditional_density, knot_grid
from hdrtmo.kernel.image.logic import get_luminance
from hdrtmo.kernel.system.progress import ProgressToken


def _lum(frame):
    return get_luminance(frame)


def test_knot_grid():
    x = knot_grid()
    assert x.shape == (161,)
    assert x[0] == pytest.approx(-8.0)
    assert x[-1] == pytest.approx(8.0)
    assert np.all(np.diff(x) > 0)


def test_density_is_deterministic(hdr_frame):
    lum = _lum(hdr_frame)
    h, w = lum.shape

    s1, d1 = compute_conditional_density(w, h, lum)
    s2, d2 = compute_conditional_density(w, h, lum)

    assert s1 == TmoStatus.OK and s2 == TmoStatus.OK
    np.testing.assert_array_equal(d1.counts, d2.counts)
    np.testing.assert_array_equal(d1.lum_hist, d2.lum_hist)
    assert (d1.x_lo, d1.x_hi) == (d2.x_lo, d2.x_hi)


def test_density_covers_scene_range(hdr_frame):
    lum = _lum(hdr_frame)
    h, w = lum.shape
    status, density = compute_conditional_density(w, h, lum)

    assert status == TmoStatus.OK
    assert density.pixel_count == w * h
    assert density.lum_hist.sum() == w * h
    lo, hi = density.x_scale[density.x_lo], density.x_scale[density.x_hi]
    assert lo == pytest.approx(np.log10(lum.min()), abs=0.06)
    assert hi == pytest.approx(np.log10(lum.max()), abs=0.06)
    # A 64x48 frame gives several pyramid levels
    assert density.band_count >= 2
    assert np.all(density.counts >= 0)


def test_density_is_read_only(hdr_frame):
    lum = _lum(hdr_frame)
    h, w = lum.shape
    _, density = compute_conditional_density(w, h, lum)

    with pytest.raises(ValueError):
        density.counts[0, 0, 0] = 1.0
    with pytest.raises(ValueError):
        density.x_scale[0] = 0.0


def test_flat_image_has_no_contrast():
    lum = np.full((2, 2), 5.0, dtype=np.float32)
    status, density = compute_conditional_density(2, 2, lum)

    assert status == TmoStatus.OK
    assert density.x_lo == density.x_hi
    assert density.counts.sum() == 0


def test_cancel_before_start(hdr_frame):
    lum = _lum(hdr_frame)
    h, w = lum.shape
    token = ProgressToken()
    token.request_termination()

    status, density = compute_conditional_density(w, h, lum, token)
    assert status == TmoStatus.ABORTED
    assert density is None


@pytest.mark.parametrize("width,height", [(0, 10), (10, 0), (7, 7)])
def test_invalid_dimensions(width, height):
    lum = np.ones((10, 10), dtype=np.float32)
    status, density = compute_conditional_density(width, height, lum)
    assert status == TmoStatus.ERROR
    assert density is None


def test_non_finite_input():
    lum = np.ones((8, 8), dtype=np.float32)
    lum[3, 3] = np.nan
    status, density = compute_conditional_density(8, 8, lum)
    assert status == TmoStatus.ERROR
    assert density is None


def test_progress_reaches_maximum(hdr_frame):
    lum = _lum(hdr_frame)
    h, w = lum.shape
    seen = []
    token = ProgressToken(on_progress=seen.append)

    compute_conditional_density(w, h, lum, token)
    assert seen[-1] == token.maximum
    assert seen == sorted(seen)


def test_cancel_after_first_band(hdr_frame):
    lum = _lum(hdr_frame)
    h, w = lum.shape
    seen = []

    def stop_after_first(value):
        seen.append(value)
        token.request_termination()

    token = ProgressToken(on_progress=stop_after_first)
    status, density = compute_conditional_density(w, h, lum, token)

    assert status == TmoStatus.ABORTED
    assert density is None
    # The next band notices the request before doing any work
    assert len(seen) == 1
    assert seen[0] < token.maximum

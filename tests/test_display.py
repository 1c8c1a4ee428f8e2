import math

import numpy as np
import pytest

from hdrtmo.domain.errors import DisplayModelError
from hdrtmo.features.display.models import (
    DISPLAY_PRESETS,
    DisplayConfig,
    DisplayFunctionGGBA,
    DisplayFunctionLUT,
    DisplaySize,
    create_display_function,
    create_display_size,
)


def test_ggba_round_trip():
    df = DisplayFunctionGGBA(gamma=2.2, l_max=200.0, l_black=0.8, e_amb=60.0, screen_refl=0.01)
    codes = np.linspace(0.0, 1.0, 11)
    np.testing.assert_allclose(df.to_code(df.to_luminance(codes)), codes, atol=1e-9)


@pytest.mark.parametrize("name", sorted(DISPLAY_PRESETS))
def test_black_level_maps_to_code_zero_exactly(name):
    df = DisplayFunctionGGBA.from_preset(name)
    assert df.to_luminance(0.0) == df.black_level
    assert df.to_code(df.black_level) == 0.0
    assert df.to_code(df.to_luminance(0.0)) == 0.0


def test_ggba_black_and_peak_include_reflection():
    df = DisplayFunctionGGBA(gamma=2.2, l_max=100.0, l_black=1.0, e_amb=math.pi * 100.0, screen_refl=0.01)
    # Reflected light adds 1 cd/m2 at both ends
    assert df.black_level == pytest.approx(2.0)
    assert df.max_luminance == pytest.approx(101.0)
    lo, hi = df.log_range()
    assert lo == pytest.approx(math.log10(2.0))
    assert hi == pytest.approx(math.log10(101.0))


def test_ggba_codes_clamp_outside_display_range():
    df = DisplayFunctionGGBA.from_preset("lcd")
    assert df.to_code(1e-6) == pytest.approx(0.0)
    assert df.to_code(1e6) == pytest.approx(1.0)


@pytest.mark.parametrize("name", sorted(DISPLAY_PRESETS))
def test_presets_are_valid(name):
    df = DisplayFunctionGGBA.from_preset(name)
    assert df.max_luminance > df.black_level > 0


def test_unknown_preset():
    with pytest.raises(DisplayModelError):
        DisplayFunctionGGBA.from_preset("oled_dream")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"gamma": 0.0},
        {"l_max": 0.5, "l_black": 1.0},
        {"l_black": -1.0},
        {"screen_refl": 1.5},
        {"l_black": 0.0, "e_amb": 0.0},
    ],
)
def test_invalid_ggba_parameters(kwargs):
    with pytest.raises(DisplayModelError):
        DisplayFunctionGGBA(**kwargs)


def test_lut_interpolates_in_log_domain(tmp_path):
    path = tmp_path / "display.lut"
    path.write_text("# code luminance\n0.0, 0.1\n0.5 10\n1.0 1000\n")
    df = DisplayFunctionLUT.from_file(str(path))

    assert df.black_level == pytest.approx(0.1)
    assert df.max_luminance == pytest.approx(1000.0)
    # Halfway between codes 0 and 0.5 is halfway in log luminance
    assert float(df.to_luminance(0.25)) == pytest.approx(1.0)
    assert float(df.to_code(100.0)) == pytest.approx(0.75)


def test_lut_rejects_non_monotonic_table():
    with pytest.raises(DisplayModelError):
        DisplayFunctionLUT([0.0, 0.5, 1.0], [1.0, 0.5, 10.0])


def test_malformed_lut_file(tmp_path):
    path = tmp_path / "broken.lut"
    path.write_text("0.0 abc\n1.0 100\n")
    with pytest.raises(DisplayModelError):
        DisplayFunctionLUT.from_file(str(path))


def test_pixels_per_degree():
    ds = DisplaySize(vres=1024, vd_screen_h=3.0)
    angle = math.degrees(2.0 * math.atan(1.0 / 6.0))
    assert ds.screen_height_deg() == pytest.approx(angle)
    assert ds.pixels_per_degree() == pytest.approx(1024 / angle)


def test_display_size_from_meters():
    ds = DisplaySize.from_meters(vres=1080, vd_meters=1.5, screen_height_m=0.5)
    assert ds.vd_screen_h == pytest.approx(3.0)


def test_display_size_validation():
    with pytest.raises(DisplayModelError):
        DisplaySize(vres=0)


def test_factories_follow_config():
    custom = DisplayConfig(display_preset="custom", display_l_max=300.0, display_l_black=0.3)
    df = create_display_function(custom)
    assert isinstance(df, DisplayFunctionGGBA)
    assert df.l_max == 300.0

    ds = create_display_size(DisplayConfig(vres=720, vd_meters=2.0, screen_height_m=0.4))
    assert ds.vres == 720
    assert ds.vd_screen_h == pytest.approx(5.0)

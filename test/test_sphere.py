import warnings

import numpy as np
import pytest

from core.camera import direction_field
from core.exceptions import DegenerateRayWarning
from core.rotation import compose_rotation
from core.sphere import (
    ProjectionStats,
    lonlat_to_xy,
    normalize_directions,
    project_to_source,
    rotate_directions,
    xyz_to_lonlat,
)

SRC_H, SRC_W = 2000, 4000


@pytest.mark.parametrize("vec,expected", [
    ((0.0, 0.0, 1.0), (0.0, 0.0)),
    ((1.0, 0.0, 0.0), (np.pi / 2, 0.0)),
    ((-1.0, 0.0, 0.0), (-np.pi / 2, 0.0)),
    ((0.0, 0.0, -1.0), (np.pi, 0.0)),
    ((0.0, 1.0, 0.0), (0.0, np.pi / 2)),
    ((0.0, -1.0, 0.0), (0.0, -np.pi / 2)),
])
def test_xyz_to_lonlat_axes(vec, expected):
    assert np.allclose(xyz_to_lonlat(np.array(vec)), expected, atol=1e-12)


def test_xyz_to_lonlat_is_invariant_to_positive_scaling():
    rng = np.random.default_rng(7)
    vectors = rng.normal(size=(64, 3))
    base = xyz_to_lonlat(vectors)

    for k in (1e-3, 0.5, 3.0, 1e4):
        assert np.allclose(xyz_to_lonlat(k * vectors), base, atol=1e-12)


def test_lonlat_to_xy_maps_extents_to_source_corners():
    lonlat = np.array([
        [0.0, 0.0],
        [-np.pi, -np.pi / 2],
        [np.pi, np.pi / 2],
    ])
    xy = lonlat_to_xy(lonlat, SRC_H, SRC_W)

    assert np.allclose(xy[0], [1999.5, 999.5])
    assert np.allclose(xy[1], [0.0, 0.0])
    assert np.allclose(xy[2], [SRC_W - 1, SRC_H - 1])


def test_rotate_directions_preserves_grid_shape():
    dirs = direction_field(4, 5, 90.0)
    r = compose_rotation(30.0, 10.0)
    rotated = rotate_directions(dirs, r)

    assert rotated.shape == dirs.shape
    assert np.allclose(rotated[2, 3], r @ dirs[2, 3])


def test_normalize_directions_clamps_zero_vectors_to_forward():
    dirs = np.array([[3.0, 0.0, 4.0], [0.0, 0.0, 0.0]])
    unit, degenerate = normalize_directions(dirs)

    assert degenerate == 1
    assert np.allclose(unit[0], [0.6, 0.0, 0.8])
    assert np.allclose(unit[1], [0.0, 0.0, 1.0])
    assert np.all(np.isfinite(unit))


def test_project_to_source_warns_when_many_rays_degenerate():
    dirs = np.zeros((4, 4, 3))
    dirs[:2] = [0.0, 0.0, 1.0]

    with pytest.warns(DegenerateRayWarning):
        xy, stats = project_to_source(dirs, np.eye(3), SRC_H, SRC_W)

    assert stats == ProjectionStats(pixel_count=16, degenerate_count=8)
    # 縮退画素は画像中心にクランプされる
    assert np.allclose(xy[3, 3], [1999.5, 999.5])
    assert np.all(np.isfinite(xy))


def test_project_to_source_stays_quiet_below_warn_ratio():
    dirs = np.zeros((2, 2, 3))
    dirs[0] = [0.0, 0.0, 1.0]

    with warnings.catch_warnings():
        warnings.simplefilter("error", DegenerateRayWarning)
        _, stats = project_to_source(dirs, np.eye(3), SRC_H, SRC_W, warn_ratio=0.6)

    assert stats.degenerate_ratio == pytest.approx(0.5)


def test_straight_ahead_view_centre_maps_to_source_centre():
    # 奇数サイズなら中心画素が主点と一致する
    dirs = direction_field(721, 1081, 60.0)
    xy, stats = project_to_source(dirs, compose_rotation(0.0, 0.0), SRC_H, SRC_W)

    assert xy.shape == (721, 1081, 2)
    assert xy.dtype == np.float32
    assert stats.degenerate_count == 0
    assert abs(xy[360, 540, 0] - (SRC_W - 1) / 2) <= 0.5
    assert abs(xy[360, 540, 1] - (SRC_H - 1) / 2) <= 0.5


def test_longitude_is_continuous_except_at_wrap_seam():
    dirs = direction_field(9, 1080, 60.0)
    xy, _ = project_to_source(dirs, compose_rotation(180.0, 0.0), SRC_H, SRC_W)
    sx = xy[4, :, 0].astype(np.float64)

    deltas = np.diff(sx)
    period = SRC_W - 1
    wrapped = (deltas + period / 2) % period - period / 2
    seam = np.abs(deltas) > period / 2

    # 真後ろを向くと経度±πの継ぎ目が視野内に入る
    assert np.count_nonzero(seam) == 1
    assert np.max(np.abs(wrapped)) < 1.0
    assert np.max(np.abs(deltas[~seam])) < 1.0

import cv2
import numpy as np
import pytest

from config import PerspectiveConfig
from core.exceptions import InvalidParameterError, ResampleError
from core.image_models import PerspectiveRequest, SourceImage
from processing.equirectangular import EquirectangularProcessor


def make_periodic_equirect(height=256, width=512, channels=3):
    """経度方向に周期的な（継ぎ目のない）テスト画像"""
    x = np.arange(width, dtype=np.float32)
    y = np.arange(height, dtype=np.float32)
    xv, yv = np.meshgrid(x, y)
    base = 127.0 + 100.0 * np.cos(2.0 * np.pi * xv / width) * np.cos(np.pi * yv / height)
    image = np.repeat(base[..., None], channels, axis=2)
    return np.clip(image, 0, 255).astype(np.uint8)


def reference_sample_map(src_h, src_w, fov, theta, phi, out_h, out_w):
    """cv2.Rodrigues を使った素朴なベクトル化実装"""
    f = 0.5 * out_w / np.tan(0.5 * np.radians(fov))
    k = np.array([[f, 0, (out_w - 1) / 2.0], [0, f, (out_h - 1) / 2.0], [0, 0, 1]])
    x, y = np.meshgrid(np.arange(out_w), np.arange(out_h))
    xyz = np.stack([x, y, np.ones_like(x)], axis=-1).astype(np.float64) @ np.linalg.inv(k).T

    r1, _ = cv2.Rodrigues(np.array([0.0, 1.0, 0.0]) * np.radians(theta))
    r2, _ = cv2.Rodrigues((r1 @ np.array([1.0, 0.0, 0.0])) * np.radians(phi))
    xyz = xyz @ (r2 @ r1).T

    xyz = xyz / np.linalg.norm(xyz, axis=-1, keepdims=True)
    lon = np.arctan2(xyz[..., 0], xyz[..., 2])
    lat = np.arcsin(xyz[..., 1])
    sx = (lon / (2 * np.pi) + 0.5) * (src_w - 1)
    sy = (lat / np.pi + 0.5) * (src_h - 1)
    return np.stack([sx, sy], axis=-1)


def test_sample_map_matches_reference_pipeline():
    processor = EquirectangularProcessor()
    request = PerspectiveRequest(fov=60.0, theta=80.0, phi=33.0, height=72, width=108)

    sample_map = processor.compute_sample_map(200, 400, request)
    expected = reference_sample_map(200, 400, 60.0, 80.0, 33.0, 72, 108)

    assert sample_map.shape == (72, 108, 2)
    assert sample_map.dtype == np.float32
    assert np.allclose(sample_map, expected, atol=1e-3)


def test_end_to_end_sample_map_for_4000x2000_source():
    processor = EquirectangularProcessor()
    front = processor.compute_sample_map(
        2000, 4000, PerspectiveRequest(fov=60.0, theta=0.0, phi=0.0, height=720, width=1080)
    )

    assert front.shape == (720, 1080, 2)
    # 偶数サイズでは中央4画素の平均が主点に対応する
    centre = front[359:361, 539:541].reshape(-1, 2).mean(axis=0)
    assert np.allclose(centre, [1999.5, 999.5], atol=0.01)

    back = processor.compute_sample_map(
        2000, 4000, PerspectiveRequest(fov=60.0, theta=180.0, phi=0.0, height=721, width=1081)
    )
    shift = (float(back[360, 540, 0]) - 1999.5) % 4000
    assert abs(shift - 2000.0) <= 1.0
    assert back[360, 540, 1] == pytest.approx(999.5, abs=0.01)


def test_multithreaded_bands_match_single_thread():
    request = PerspectiveRequest(fov=90.0, theta=-40.0, phi=25.0, height=100, width=60)
    single = EquirectangularProcessor(PerspectiveConfig.from_dict({"num_workers": 1}))
    multi = EquirectangularProcessor(PerspectiveConfig.from_dict({
        "num_workers": 4,
        "min_rows_per_worker": 8,
    }))

    assert len(multi._split_rows(100)) == 4
    np.testing.assert_allclose(
        multi.compute_sample_map(300, 600, request),
        single.compute_sample_map(300, 600, request),
        atol=1e-4,
    )


@pytest.mark.parametrize("height,workers,min_rows", [(100, 4, 8), (7, 8, 1), (10, 8, 32), (1000, 3, 32)])
def test_split_rows_covers_output_with_disjoint_bands(height, workers, min_rows):
    processor = EquirectangularProcessor(PerspectiveConfig.from_dict({
        "num_workers": workers,
        "min_rows_per_worker": min_rows,
    }))
    bands = processor._split_rows(height)

    assert bands[0][0] == 0
    assert bands[-1][1] == height
    for (_, stop), (start, _) in zip(bands[:-1], bands[1:]):
        assert stop == start
    assert len(bands) <= workers


def test_invalid_request_is_rejected_before_computation():
    processor = EquirectangularProcessor()
    with pytest.raises(InvalidParameterError):
        processor.compute_sample_map(100, 200, PerspectiveRequest(180.0, 0.0, 0.0, 10, 10))
    with pytest.raises(InvalidParameterError):
        processor.extract(np.zeros((10, 20, 3), np.uint8), 60.0, 0.0, 0.0, 0, 10)


def test_to_perspective_preserves_dtype_and_channels():
    processor = EquirectangularProcessor()
    request = PerspectiveRequest(fov=90.0, theta=30.0, phi=-10.0, height=24, width=32)

    color = processor.to_perspective(SourceImage(make_periodic_equirect()), request)
    gray = processor.to_perspective(make_periodic_equirect(channels=1)[..., 0], request)
    rgba = processor.to_perspective(make_periodic_equirect(channels=4), request)
    deep = processor.to_perspective(make_periodic_equirect().astype(np.uint16) * 256, request)

    assert color.shape == (24, 32, 3) and color.dtype == np.uint8
    assert gray.shape == (24, 32)
    assert rgba.shape == (24, 32, 4)
    assert deep.dtype == np.uint16


def test_no_visible_seam_when_looking_across_longitude_wrap():
    processor = EquirectangularProcessor()
    source = make_periodic_equirect()

    # theta=180 で経度±πの継ぎ目が出力中央を横切る
    view = processor.extract(source, 90.0, 180.0, 0.0, 64, 96).astype(np.int32)
    column_steps = np.abs(np.diff(view[:, :, 0], axis=1))

    assert column_steps.max() <= 4


def test_vertical_border_policy_controls_pole_rows():
    # 低解像度なら天頂付近の画素が 0 < y < 1 に入り、3次補間が範囲外の行を参照する
    source = np.full((16, 32, 3), 200.0, dtype=np.float32)
    request = PerspectiveRequest(fov=120.0, theta=0.0, phi=90.0, height=48, width=48)

    clamp = EquirectangularProcessor(PerspectiveConfig.from_dict({"vertical_border": "replicate"}))
    constant = EquirectangularProcessor(PerspectiveConfig.from_dict({
        "vertical_border": "constant",
        "border_value": 0.0,
    }))

    assert np.allclose(clamp.to_perspective(source, request), 200.0, atol=1e-3)
    assert np.any(np.abs(constant.to_perspective(source, request) - 200.0) > 1.0)


def test_legacy_wrap_border_mode_runs():
    processor = EquirectangularProcessor(PerspectiveConfig.from_dict({"vertical_border": "wrap"}))
    out = processor.extract(make_periodic_equirect(), 60.0, 10.0, 45.0, 20, 30)

    assert out.shape == (20, 30, 3)


def test_remap_failure_is_reported_as_resample_error(monkeypatch):
    def broken_remap(*args, **kwargs):
        raise cv2.error("remap failed")

    monkeypatch.setattr(cv2, "remap", broken_remap)
    processor = EquirectangularProcessor()

    with pytest.raises(ResampleError):
        processor.extract(make_periodic_equirect(), 60.0, 0.0, 0.0, 8, 8)


def test_whole_number_float_sizes_are_accepted_as_ints():
    processor = EquirectangularProcessor()
    request = PerspectiveRequest(60.0, 0.0, 0.0, 10.0, 12.0).validate()

    assert isinstance(request.height, int) and isinstance(request.width, int)
    assert processor.compute_sample_map(100, 200, request).shape == (10, 12, 2)
    assert processor.extract(make_periodic_equirect(), 60.0, 0.0, 0.0, 8.0, 6.0).shape == (8, 6, 3)


@pytest.mark.parametrize("height,width", [(float("nan"), 10), (10, float("inf")), (float("-inf"), 10)])
def test_non_finite_sizes_are_rejected_with_parameter_name(height, width):
    processor = EquirectangularProcessor()
    request = PerspectiveRequest(60.0, 0.0, 0.0, height, width)

    with pytest.raises(InvalidParameterError) as exc_info:
        processor.compute_sample_map(100, 200, request)
    assert exc_info.value.parameter == ("height" if height != 10 else "width")

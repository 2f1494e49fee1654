"""
球面投影 - 方向ベクトルからEquirectangular座標へ

回転済み方向ベクトルを経度・緯度に変換し、
入力Equirectangular画像上の小数ピクセル座標を求める。
"""

import warnings
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from core.exceptions import DegenerateRayWarning
from utils.logger import get_logger

logger = get_logger(__name__)

# ノルムがこれ未満の方向ベクトルは縮退とみなす
DEFAULT_EPSILON = 1e-12
# 縮退レイの割合がこれを超えたら警告
DEFAULT_WARN_RATIO = 1e-4

# 縮退レイの置き換え先（経度0・緯度0 = 画像中心）
FORWARD = np.array([0.0, 0.0, 1.0])


@dataclass
class ProjectionStats:
    """投影1回分の統計"""
    pixel_count: int = 0
    degenerate_count: int = 0

    @property
    def degenerate_ratio(self) -> float:
        if self.pixel_count == 0:
            return 0.0
        return self.degenerate_count / self.pixel_count

    def merge(self, other: 'ProjectionStats') -> 'ProjectionStats':
        return ProjectionStats(
            pixel_count=self.pixel_count + other.pixel_count,
            degenerate_count=self.degenerate_count + other.degenerate_count,
        )


def rotate_directions(directions: np.ndarray, rotation: np.ndarray) -> np.ndarray:
    """
    方向ベクトル場を回転する。

    (..., 3) を (N, 3) に平坦化して1回の行列積で d' = R · d を計算する。
    """
    shape = directions.shape
    flat = directions.reshape(-1, 3)
    return (flat @ rotation.T).reshape(shape)


def normalize_directions(directions: np.ndarray,
                         epsilon: float = DEFAULT_EPSILON) -> Tuple[np.ndarray, int]:
    """
    方向ベクトルを単位ベクトルに正規化する。

    ノルムが epsilon 未満の画素はNaNを出さないよう前方ベクトルに置き換える。

    Returns:
        (正規化済みベクトル, 縮退画素数)
    """
    norm = np.linalg.norm(directions, axis=-1, keepdims=True)
    degenerate = norm[..., 0] < epsilon
    degenerate_count = int(np.count_nonzero(degenerate))

    if degenerate_count == 0:
        return directions / norm, 0

    safe_norm = np.where(norm < epsilon, 1.0, norm)
    unit = directions / safe_norm
    unit[degenerate] = FORWARD
    return unit, degenerate_count


def xyz_to_lonlat(xyz: np.ndarray, epsilon: float = DEFAULT_EPSILON) -> np.ndarray:
    """
    方向ベクトルを経度・緯度に変換する。

    経度0は +z 方向。lon = atan2(x, z), lat = asin(y)。
    入力ベクトルの正のスケーリングには依存しない。

    Args:
        xyz: 方向ベクトル (..., 3)

    Returns:
        (..., 2) の [lon, lat]、lon ∈ [-π, π], lat ∈ [-π/2, π/2]
    """
    unit, _ = normalize_directions(xyz, epsilon)
    return _unit_to_lonlat(unit)


def _unit_to_lonlat(unit: np.ndarray) -> np.ndarray:
    # atan2の引数順は (x, z)
    lon = np.arctan2(unit[..., 0], unit[..., 2])
    lat = np.arcsin(np.clip(unit[..., 1], -1.0, 1.0))
    return np.stack([lon, lat], axis=-1)


def lonlat_to_xy(lonlat: np.ndarray, src_height: int, src_width: int) -> np.ndarray:
    """
    経度・緯度を入力画像の小数ピクセル座標に変換する。

    座標はクランプもラップもしない（境界処理はリサンプラ側で行う）。

    Args:
        lonlat: (..., 2) の [lon, lat]
        src_height: 入力画像の高さ（行数）
        src_width: 入力画像の幅（列数）

    Returns:
        (..., 2) の [x, y]
    """
    x = (lonlat[..., 0] / (2 * np.pi) + 0.5) * (src_width - 1)
    y = (lonlat[..., 1] / np.pi + 0.5) * (src_height - 1)
    return np.stack([x, y], axis=-1)


def project_to_source(directions: np.ndarray, rotation: np.ndarray,
                      src_height: int, src_width: int,
                      epsilon: float = DEFAULT_EPSILON,
                      warn_ratio: float = DEFAULT_WARN_RATIO,
                      report: bool = True) -> Tuple[np.ndarray, ProjectionStats]:
    """
    カメラ座標系の方向ベクトル場をサンプリング座標場に変換する。

    Args:
        directions: 回転前の方向ベクトル場 (H x W x 3)
        rotation: 3x3 回転行列
        src_height: 入力画像の高さ
        src_width: 入力画像の幅
        epsilon: 縮退判定のノルム閾値
        warn_ratio: 警告を出す縮退画素の割合
        report: Falseなら縮退レイの報告を呼び出し側に任せる

    Returns:
        (サンプリング座標場 (H x W x 2, float32), ProjectionStats)
    """
    rotated = rotate_directions(directions, rotation)
    unit, degenerate_count = normalize_directions(rotated, epsilon)

    xy = lonlat_to_xy(_unit_to_lonlat(unit), src_height, src_width)

    stats = ProjectionStats(
        pixel_count=int(np.prod(directions.shape[:-1])),
        degenerate_count=degenerate_count,
    )
    if report:
        report_degenerate_rays(stats, warn_ratio)
    return xy.astype(np.float32), stats


def report_degenerate_rays(stats: ProjectionStats,
                           warn_ratio: float = DEFAULT_WARN_RATIO) -> None:
    """縮退レイの件数を記録し、割合が閾値を超えたら警告する。"""
    if stats.degenerate_count == 0:
        return

    message = (f"縮退レイを前方ベクトルにクランプしました: "
               f"{stats.degenerate_count}/{stats.pixel_count} 画素 "
               f"({stats.degenerate_ratio:.2e})")
    if stats.degenerate_ratio > warn_ratio:
        logger.warning(message)
        warnings.warn(message, DegenerateRayWarning, stacklevel=2)
    else:
        logger.debug(message)

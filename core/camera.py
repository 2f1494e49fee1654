"""
ピンホールカメラモデル - レイ生成

出力画像の各画素について、内部パラメータ行列Kの逆行列を用いて
カメラ座標系の方向ベクトル（z=1）を生成する。
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from core.exceptions import MatrixInversionError
from core.image_models import validate_fov, validate_output_size
from utils.logger import get_logger

logger = get_logger(__name__)

# K^-1 · K = I の検証許容誤差
INVERSE_TOLERANCE = 1e-9


@dataclass(frozen=True)
class CameraIntrinsics:
    """
    ピンホールカメラの内部パラメータ

    Attributes:
    -----------
    f : float
        焦点距離（ピクセル）
    cx, cy : float
        主点（画像中心）
    width, height : int
        出力画像サイズ
    """
    f: float
    cx: float
    cy: float
    width: int
    height: int

    def matrix(self) -> np.ndarray:
        """内部パラメータ行列K (3x3)"""
        return np.array([
            [self.f, 0.0, self.cx],
            [0.0, self.f, self.cy],
            [0.0, 0.0, 1.0],
        ], dtype=np.float64)

    def inverse(self) -> np.ndarray:
        """
        Kの逆行列を返す。

        Raises:
        -------
        MatrixInversionError
            Kが特異、または逆行列の検証に失敗した場合
        """
        k = self.matrix()
        try:
            k_inv = np.linalg.inv(k)
        except np.linalg.LinAlgError as e:
            raise MatrixInversionError(f"内部パラメータ行列が特異です: f={self.f}") from e

        if not np.allclose(k_inv @ k, np.eye(3), rtol=0.0, atol=INVERSE_TOLERANCE):
            raise MatrixInversionError(f"K^-1·K が単位行列になりません: f={self.f}")
        return k_inv


def compute_intrinsics(height: int, width: int, fov: float) -> CameraIntrinsics:
    """
    出力サイズと水平視野角から内部パラメータを計算する。

    行列の逆計算より前に視野角と出力サイズを検証する。

    Args:
        height: 出力画像の高さ
        width: 出力画像の幅
        fov: 水平視野角（度）

    Returns:
        CameraIntrinsics
    """
    validate_fov(fov)
    validate_output_size(height, width)

    f = 0.5 * width / np.tan(0.5 * np.radians(fov))
    cx = (width - 1) / 2.0
    cy = (height - 1) / 2.0
    return CameraIntrinsics(f=float(f), cx=cx, cy=cy, width=int(width), height=int(height))


def generate_rays(intrinsics: CameraIntrinsics, row_start: int = 0,
                  row_stop: Optional[int] = None,
                  k_inv: Optional[np.ndarray] = None) -> np.ndarray:
    """
    指定行範囲の方向ベクトル場を生成する。

    画素 (i, j) に対して dir = K^-1 · [j, i, 1]^T を計算する。
    ワーカーが走査線単位で分担できるよう行範囲を指定できる。

    Args:
        intrinsics: カメラ内部パラメータ
        row_start: 開始行（含む）
        row_stop: 終了行（含まない）。Noneで最終行まで
        k_inv: 計算済みのK^-1（省略時はここで計算）

    Returns:
        方向ベクトル場 (rows x width x 3), float64
    """
    if row_stop is None:
        row_stop = intrinsics.height
    if k_inv is None:
        k_inv = intrinsics.inverse()

    cols = np.arange(intrinsics.width, dtype=np.float64)
    rows = np.arange(row_start, row_stop, dtype=np.float64)
    x, y = np.meshgrid(cols, rows)
    z = np.ones_like(x)

    xyz = np.stack([x, y, z], axis=-1)
    return xyz @ k_inv.T


def direction_field(height: int, width: int, fov: float) -> np.ndarray:
    """出力画像全体の方向ベクトル場 (height x width x 3) を生成する。"""
    intrinsics = compute_intrinsics(height, width, fov)
    logger.debug(f"内部パラメータ: f={intrinsics.f:.3f}, cx={intrinsics.cx}, cy={intrinsics.cy}")
    return generate_rays(intrinsics)

"""
Equirectangular投影処理モジュール
360度Equirectangular画像から透視投影画像を切り出す

レイ生成 → 回転 → 球面投影 を走査線単位でマルチスレッド計算し、
cv2.remap() で水平ラップ付きのリサンプリングを行う。
"""

import os
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Tuple, Union

import cv2
import numpy as np

from config import PerspectiveConfig
from core.camera import compute_intrinsics, generate_rays
from core.exceptions import ResampleError
from core.image_models import PerspectiveRequest, SourceImage
from core.rotation import compose_rotation
from core.sphere import ProjectionStats, project_to_source, report_degenerate_rays
from utils.logger import get_logger

logger = get_logger(__name__)

ImageLike = Union[SourceImage, np.ndarray]


class EquirectangularProcessor:
    """
    360度Equirectangular画像の透視投影変換クラス

    - サンプリング座標は出力画像ごとに毎回計算する（キャッシュしない）
    - K^-1 と回転行列は1度だけ計算し、全ワーカーで読み取り専用に共有
    - 各ワーカーは出力座標場の互いに素な行範囲だけを書き込む
    """

    def __init__(self, config: Optional[PerspectiveConfig] = None):
        """初期化"""
        self.config = (config or PerspectiveConfig()).validate()

    # ===== サンプリング座標計算 =====

    def compute_sample_map(self, src_height: int, src_width: int,
                           request: PerspectiveRequest) -> np.ndarray:
        """
        出力画素ごとの入力画像サンプリング座標を計算する

        Args:
            src_height: 入力画像の高さ（行数）
            src_width: 入力画像の幅（列数）
            request: 透視投影の要求パラメータ

        Returns:
            サンプリング座標場 (height x width x 2), float32 の [x, y]
        """
        request.validate()
        proj_cfg = self.config.projection

        intrinsics = compute_intrinsics(request.height, request.width, request.fov)
        k_inv = intrinsics.inverse()
        rotation = compose_rotation(request.theta, request.phi)

        sample_map = np.empty((intrinsics.height, intrinsics.width, 2), dtype=np.float32)
        bands = self._split_rows(intrinsics.height)

        def work(band: Tuple[int, int]) -> ProjectionStats:
            row_start, row_stop = band
            rays = generate_rays(intrinsics, row_start, row_stop, k_inv=k_inv)
            xy, stats = project_to_source(
                rays, rotation, src_height, src_width,
                epsilon=proj_cfg.degenerate_epsilon,
                report=False,
            )
            sample_map[row_start:row_stop] = xy
            return stats

        if len(bands) == 1:
            band_stats = [work(bands[0])]
        else:
            with ThreadPoolExecutor(max_workers=len(bands)) as executor:
                band_stats = list(executor.map(work, bands))

        total = ProjectionStats()
        for stats in band_stats:
            total = total.merge(stats)
        report_degenerate_rays(total, proj_cfg.degenerate_warn_ratio)

        logger.debug(
            f"サンプリング座標計算: {request.width}x{request.height}, "
            f"bands={len(bands)}, fov={request.fov}, theta={request.theta}, phi={request.phi}"
        )
        return sample_map

    def _split_rows(self, height: int) -> List[Tuple[int, int]]:
        """出力の行を連続した走査線バンドに分割する"""
        proj_cfg = self.config.projection
        workers = proj_cfg.num_workers or os.cpu_count() or 1
        workers = max(1, min(workers, height // proj_cfg.min_rows_per_worker))

        edges = [height * k // workers for k in range(workers + 1)]
        return [(a, b) for a, b in zip(edges[:-1], edges[1:]) if b > a]

    # ===== リサンプリング =====

    def remap(self, source: ImageLike, sample_map: np.ndarray) -> np.ndarray:
        """
        サンプリング座標で入力画像をリサンプリングする

        経度方向（x）はラップ、緯度方向（y）は設定の境界処理に従う。
        水平ラップは左右にラップ列をパディングしてx座標をずらすことで実現する。

        Args:
            source: 入力Equirectangular画像
            sample_map: (H x W x 2) のサンプリング座標

        Returns:
            出力画像 (H x W [x C])、入力と同じdtype
        """
        pixels = _pixels(source)
        remap_cfg = self.config.remap
        map_x = np.ascontiguousarray(sample_map[..., 0], dtype=np.float32)
        map_y = np.ascontiguousarray(sample_map[..., 1], dtype=np.float32)
        border_value = _border_scalar(remap_cfg.border_value)

        try:
            if remap_cfg.vertical_border == 'wrap':
                return cv2.remap(pixels, map_x, map_y, self.config.interpolation_flag,
                                 borderMode=cv2.BORDER_WRAP)

            pad = remap_cfg.wrap_padding
            padded = cv2.copyMakeBorder(pixels, 0, 0, pad, pad, cv2.BORDER_WRAP)
            return cv2.remap(padded, map_x + np.float32(pad), map_y,
                             self.config.interpolation_flag,
                             borderMode=self.config.vertical_border_flag,
                             borderValue=border_value)
        except cv2.error as e:
            raise ResampleError(f"cv2.remap に失敗しました: {e}") from e

    # ===== 透視投影変換 =====

    def to_perspective(self, source: ImageLike, request: PerspectiveRequest) -> np.ndarray:
        """
        Equirectangular画像から透視投影画像を切り出す

        Args:
            source: 入力Equirectangular画像
            request: 視野角・ヨー・ピッチ・出力サイズ

        Returns:
            透視投影画像 (height x width [x C])
        """
        pixels = _pixels(source)
        src_height, src_width = pixels.shape[:2]
        sample_map = self.compute_sample_map(src_height, src_width, request)
        return self.remap(pixels, sample_map)

    def extract(self, source: ImageLike, fov: float, theta: float, phi: float,
                height: int, width: int) -> np.ndarray:
        """to_perspective() の引数展開版"""
        request = PerspectiveRequest(fov=fov, theta=theta, phi=phi, height=height, width=width)
        return self.to_perspective(source, request)


def _pixels(source: ImageLike) -> np.ndarray:
    if isinstance(source, SourceImage):
        return source.pixels
    return np.asarray(source)


def _border_scalar(value: float) -> Tuple[float, float, float, float]:
    # cv2は4要素のスカラーで全チャンネルを塗る
    return (value, value, value, value)

"""
equi2persp - Configuration
360度Equirectangular画像 → 透視投影変換の設定

dataclassベースの構造化された設定とレガシー定数を併存。
EquirectangularProcessorは PerspectiveConfig を使用し、
CLIではJSON/dict形式でオーバーライドできる。
"""

from dataclasses import dataclass, field, asdict

import cv2

from core.exceptions import InvalidParameterError


# =============================================================================
# リサンプリング方式の対応表
# =============================================================================

INTERPOLATION_MODES = {
    'nearest': cv2.INTER_NEAREST,
    'linear': cv2.INTER_LINEAR,
    'cubic': cv2.INTER_CUBIC,
    'lanczos': cv2.INTER_LANCZOS4,
}

# 補間方式ごとに必要な水平ラップ列数（片側）
MIN_WRAP_PADDING = {
    'nearest': 2,
    'linear': 2,
    'cubic': 2,
    'lanczos': 4,
}

# 緯度方向（上下端）の境界処理
VERTICAL_BORDER_MODES = {
    'replicate': cv2.BORDER_REPLICATE,  # 端の行でクランプ
    'constant': cv2.BORDER_CONSTANT,    # border_value で塗りつぶし
    'wrap': cv2.BORDER_WRAP,            # 上下もラップ（旧実装互換）
}


# =============================================================================
# データクラスベース設定
# =============================================================================

@dataclass
class RemapConfig:
    """
    cv2.remap によるリサンプリング設定

    経度方向は常にラップする。緯度方向は vertical_border で選択。
    デフォルトは定数塗りつぶしではなく replicate（極付近の3次補間のオーバーシュート回避）。
    wrap_padding は補間方式の近傍幅以上が必要（lanczos: 4, その他: 2）。
    """
    interpolation: str = 'cubic'
    vertical_border: str = 'replicate'
    border_value: float = 0.0     # vertical_border='constant' の塗りつぶし値
    wrap_padding: int = 4         # 水平ラップ用に左右へ足す列数（Lanczos4の近傍幅）


@dataclass
class ProjectionConfig:
    """
    サンプリング座標計算の設定
    """
    num_workers: int = 0                   # 0 で os.cpu_count()
    min_rows_per_worker: int = 32          # 1ワーカーあたりの最小行数
    degenerate_epsilon: float = 1e-12      # 縮退レイ判定のノルム閾値
    degenerate_warn_ratio: float = 1e-4    # 縮退レイ警告を出す割合


@dataclass
class IOConfig:
    """
    画像入出力の設定
    """
    keep_alpha: bool = False       # True で IMREAD_UNCHANGED（アルファ・16bit保持）
    jpeg_quality: int = 95
    png_compression: int = 3


@dataclass
class PerspectiveConfig:
    """
    透視投影変換の統合設定

    全サブ設定を束ね、dict変換メソッドとファクトリメソッドを提供。
    """
    remap: RemapConfig = field(default_factory=RemapConfig)
    projection: ProjectionConfig = field(default_factory=ProjectionConfig)
    io: IOConfig = field(default_factory=IOConfig)

    def validate(self) -> 'PerspectiveConfig':
        """
        選択肢・数値範囲を検証する

        Raises:
        -------
        InvalidParameterError
            不明な補間方式・境界処理、範囲外の数値
        """
        if self.remap.interpolation not in INTERPOLATION_MODES:
            raise InvalidParameterError(
                'interpolation', self.remap.interpolation,
                f"{sorted(INTERPOLATION_MODES)} のいずれかを指定してください"
            )
        if self.remap.vertical_border not in VERTICAL_BORDER_MODES:
            raise InvalidParameterError(
                'vertical_border', self.remap.vertical_border,
                f"{sorted(VERTICAL_BORDER_MODES)} のいずれかを指定してください"
            )
        min_padding = MIN_WRAP_PADDING[self.remap.interpolation]
        if self.remap.wrap_padding < min_padding:
            raise InvalidParameterError(
                'wrap_padding', self.remap.wrap_padding,
                f"interpolation={self.remap.interpolation} では{min_padding}以上が必要です"
            )
        if self.projection.num_workers < 0:
            raise InvalidParameterError('num_workers', self.projection.num_workers, "0以上が必要です")
        if self.projection.min_rows_per_worker < 1:
            raise InvalidParameterError(
                'min_rows_per_worker', self.projection.min_rows_per_worker, "1以上が必要です"
            )
        if not 0 <= self.io.jpeg_quality <= 100:
            raise InvalidParameterError('jpeg_quality', self.io.jpeg_quality, "0-100の範囲で指定してください")
        if not 0 <= self.io.png_compression <= 9:
            raise InvalidParameterError('png_compression', self.io.png_compression, "0-9の範囲で指定してください")
        return self

    @property
    def interpolation_flag(self) -> int:
        """cv2の補間フラグ"""
        return INTERPOLATION_MODES[self.remap.interpolation]

    @property
    def vertical_border_flag(self) -> int:
        """cv2の境界処理フラグ"""
        return VERTICAL_BORDER_MODES[self.remap.vertical_border]

    def to_dict(self) -> dict:
        """
        フラットな小文字キーのdictに変換

        Returns:
        --------
        dict
            from_dict() で読み戻せる形式
        """
        flat = {}
        for section in asdict(self).values():
            flat.update(section)
        return flat

    @classmethod
    def from_dict(cls, d: dict) -> 'PerspectiveConfig':
        """
        設定dictからPerspectiveConfigを生成

        未知のキーは無視する。

        Parameters:
        -----------
        d : dict
            フラットな小文字キー辞書（JSON設定ファイルの内容など）

        Returns:
        --------
        PerspectiveConfig
        """
        config = cls()
        # Remap
        config.remap.interpolation = d.get('interpolation', config.remap.interpolation)
        config.remap.vertical_border = d.get('vertical_border', config.remap.vertical_border)
        config.remap.border_value = float(d.get('border_value', config.remap.border_value))
        config.remap.wrap_padding = int(d.get('wrap_padding', config.remap.wrap_padding))
        # Projection
        config.projection.num_workers = int(d.get('num_workers', config.projection.num_workers))
        config.projection.min_rows_per_worker = int(
            d.get('min_rows_per_worker', config.projection.min_rows_per_worker)
        )
        config.projection.degenerate_epsilon = float(
            d.get('degenerate_epsilon', config.projection.degenerate_epsilon)
        )
        config.projection.degenerate_warn_ratio = float(
            d.get('degenerate_warn_ratio', config.projection.degenerate_warn_ratio)
        )
        # IO
        config.io.keep_alpha = bool(d.get('keep_alpha', config.io.keep_alpha))
        config.io.jpeg_quality = int(d.get('jpeg_quality', config.io.jpeg_quality))
        config.io.png_compression = int(d.get('png_compression', config.io.png_compression))
        return config


# =============================================================================
# レガシー定数（CLIのデフォルト値）
# =============================================================================

DEFAULT_FOV = 60.0
DEFAULT_THETA = 0.0
DEFAULT_PHI = 0.0
DEFAULT_OUTPUT_HEIGHT = 720
DEFAULT_OUTPUT_WIDTH = 1080

"""
画像・リクエスト関連データモデル。

入力Equirectangular画像と、透視投影の要求パラメータを保持する。
幅 = 列数、高さ = 行数 で統一する。
"""

import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from core.exceptions import InvalidParameterError


@dataclass(frozen=True, eq=False)
class SourceImage:
    """読み込み済みの入力Equirectangular画像（読み取り専用）。"""
    pixels: np.ndarray

    def __post_init__(self):
        if self.pixels.ndim not in (2, 3) or self.pixels.size == 0:
            raise InvalidParameterError(
                "pixels", self.pixels.shape, "2次元または3次元の空でない配列が必要です"
            )
        # 呼び出し元の配列を書き換えないよう複製してから読み取り専用にする
        pixels = np.array(self.pixels, copy=True)
        pixels.setflags(write=False)
        object.__setattr__(self, "pixels", pixels)

    @property
    def height(self) -> int:
        """行数"""
        return int(self.pixels.shape[0])

    @property
    def width(self) -> int:
        """列数"""
        return int(self.pixels.shape[1])

    @property
    def channels(self) -> int:
        return 1 if self.pixels.ndim == 2 else int(self.pixels.shape[2])

    @property
    def dtype(self) -> np.dtype:
        return self.pixels.dtype


@dataclass(frozen=True)
class PerspectiveRequest:
    """
    透視投影の要求パラメータ。

    Attributes:
    -----------
    fov : float
        水平視野角（度、0より大きく180未満）
    theta : float
        ヨー角（度、鉛直軸周り）
    phi : float
        ピッチ角（度、ヨー適用後の水平軸周り）
    height : int
        出力画像の高さ（行数）
    width : int
        出力画像の幅（列数）
    """
    fov: float
    theta: float
    phi: float
    height: int
    width: int

    def validate(self) -> 'PerspectiveRequest':
        """パラメータを検証し、問題なければ自身を返す。"""
        validate_fov(self.fov)
        height, width = validate_output_size(self.height, self.width)
        # 10.0 のような整数値の float は int に揃える
        object.__setattr__(self, "height", height)
        object.__setattr__(self, "width", width)
        for name in ("theta", "phi"):
            value = getattr(self, name)
            if not math.isfinite(value):
                raise InvalidParameterError(name, value, "有限の角度が必要です")
        return self


def validate_fov(fov: float) -> None:
    """視野角が開区間 (0, 180) に入っているか検証する。"""
    if not math.isfinite(fov) or fov <= 0.0 or fov >= 180.0:
        raise InvalidParameterError("fov", fov, "視野角は0より大きく180未満である必要があります")


def validate_output_size(height: int, width: int) -> Tuple[int, int]:
    """出力サイズを検証し、int に正規化した (height, width) を返す。"""
    return (_positive_int("height", height, "出力の高さは正の整数である必要があります"),
            _positive_int("width", width, "出力の幅は正の整数である必要があります"))


def _positive_int(name: str, value, reason: str) -> int:
    # NaN・無限大は int() の前に弾く
    if not math.isfinite(value) or int(value) != value or value <= 0:
        raise InvalidParameterError(name, value, reason)
    return int(value)

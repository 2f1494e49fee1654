"""
画像I/Oユーティリティ

Windows環境で日本語など非ASCII文字を含むパスでも安全に画像を読み書きする。
失敗時は DecodeError / EncodeError を原因付きで送出する。
"""

from pathlib import Path
from typing import Optional, Sequence, Union

import cv2
import numpy as np

from core.exceptions import DecodeError, EncodeError
from core.image_models import SourceImage
from utils.logger import get_logger

logger = get_logger(__name__)


PathLike = Union[str, Path]


def read_image(path: PathLike, flags: int = cv2.IMREAD_COLOR) -> np.ndarray:
    """
    Unicodeパス対応で画像を読み込む。

    `cv2.imread` は環境によりUnicodeパスで失敗するため、
    `numpy.fromfile` + `cv2.imdecode` で読み込む。

    Raises:
        DecodeError: ファイルが存在しない・読めない・復号できない場合
    """
    path_obj = Path(path)
    if not path_obj.is_file():
        raise DecodeError(path_obj, reason="ファイルが見つかりません")

    try:
        buffer = np.fromfile(str(path_obj), dtype=np.uint8)
    except OSError as e:
        raise DecodeError(path_obj, e) from e

    if buffer.size == 0:
        raise DecodeError(path_obj, reason="空のファイルです")

    try:
        image = cv2.imdecode(buffer, flags)
    except cv2.error as e:
        raise DecodeError(path_obj, e) from e

    if image is None:
        raise DecodeError(path_obj, reason="未対応のフォーマットまたは破損したデータです")

    logger.debug(f"画像読み込み: {path_obj} shape={image.shape} dtype={image.dtype}")
    return image


def load_source_image(path: PathLike, keep_alpha: bool = False) -> SourceImage:
    """入力Equirectangular画像を読み込み SourceImage として返す。"""
    flags = cv2.IMREAD_UNCHANGED if keep_alpha else cv2.IMREAD_COLOR
    return SourceImage(read_image(path, flags))


def encode_params(path: PathLike, jpeg_quality: int = 95,
                  png_compression: int = 3) -> list:
    """拡張子に応じた cv2.imencode 用パラメータを返す"""
    ext = Path(path).suffix.lower()
    if ext in ('.jpg', '.jpeg'):
        return [cv2.IMWRITE_JPEG_QUALITY, int(jpeg_quality)]
    if ext == '.png':
        return [cv2.IMWRITE_PNG_COMPRESSION, int(png_compression)]
    return []


def write_image(path: PathLike,
                image: np.ndarray,
                params: Optional[Sequence[int]] = None) -> Path:
    """
    Unicodeパス対応で画像を保存する。

    OpenCVの `cv2.imwrite` は環境によりUnicodeパスで失敗するため、
    `cv2.imencode` + `numpy.ndarray.tofile` で保存する。

    Raises:
        EncodeError: 拡張子なし・エンコード失敗・書き込み失敗の場合
    """
    path_obj = Path(path)
    ext = path_obj.suffix.lower()
    if not ext:
        raise EncodeError(path_obj, reason="拡張子がありません")

    try:
        ok, encoded = cv2.imencode(ext, image, list(params or []))
    except cv2.error as e:
        raise EncodeError(path_obj, e) from e
    if not ok:
        raise EncodeError(path_obj, reason="エンコーダが失敗しました")

    try:
        path_obj.parent.mkdir(parents=True, exist_ok=True)
        encoded.tofile(str(path_obj))
    except OSError as e:
        raise EncodeError(path_obj, e) from e

    logger.debug(f"画像保存: {path_obj} ({encoded.size} bytes)")
    return path_obj

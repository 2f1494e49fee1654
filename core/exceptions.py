"""
カスタム例外クラス - equi2persp用

パラメータ検証エラー、画像I/O失敗、数値的な縮退などを
呼び出し側で明示的に区別するための例外クラス群。
"""

from pathlib import Path
from typing import Optional, Union


class PerspectiveError(Exception):
    """透視投影変換で送出される例外の基底クラス"""


class InvalidParameterError(PerspectiveError, ValueError):
    """
    パラメータ不正エラー

    視野角が (0, 180) の範囲外、出力サイズが0以下、
    角度が有限値でない場合などに計算開始前に送出される。

    Attributes:
    -----------
    parameter : str
        不正なパラメータ名
    value : object
        渡された値
    """

    def __init__(self, parameter: str, value, reason: str = "不正な値です"):
        self.parameter = parameter
        self.value = value
        super().__init__(f"{parameter}={value!r}: {reason}")


class _ImageIOError(PerspectiveError):
    """画像I/O境界で発生したエラーの共通部分"""

    action = "画像I/O"

    def __init__(self, path: Union[str, Path], cause: Optional[BaseException] = None,
                 reason: str = ""):
        self.path = Path(path)
        self.cause = cause
        detail = reason or (str(cause) if cause is not None else "原因不明")
        super().__init__(f"{self.action}失敗 ({self.path}): {detail}")


class DecodeError(_ImageIOError):
    """
    画像デコードエラー

    ファイルが存在しない、読み込めない、未対応フォーマット、
    破損データなどで画像を復号できない場合に送出される。
    """

    action = "画像デコード"


class EncodeError(_ImageIOError):
    """
    画像エンコードエラー

    拡張子なし、エンコーダ失敗、書き込み失敗などで
    出力画像を保存できない場合に送出される。
    """

    action = "画像エンコード"


class ResampleError(PerspectiveError):
    """リサンプリング（cv2.remap）呼び出しの失敗"""


class MatrixInversionError(PerspectiveError):
    """
    内部パラメータ行列Kの逆行列計算失敗

    InvalidParameterErrorの検証を通過していれば発生しないため、
    内部不変条件の違反として扱う（リトライしない）。
    """


class DegenerateRayWarning(RuntimeWarning):
    """
    縮退レイ警告

    回転後の方向ベクトルのノルムがほぼ0になった画素が
    無視できない割合で存在したことを示す。値は前方ベクトルに
    クランプ済みのため処理は継続される。
    """

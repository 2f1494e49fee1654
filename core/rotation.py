"""
回転行列合成 - ヨー→ピッチ

2段階の軸角度（Rodrigues）回転から視線方向の回転行列を合成する。
ピッチは常にヨー適用後の水平軸周りに掛けるため、順序は非可換。
"""

from typing import Sequence

import numpy as np

Y_AXIS = np.array([0.0, 1.0, 0.0])
X_AXIS = np.array([1.0, 0.0, 0.0])


def skew(axis: Sequence[float]) -> np.ndarray:
    """ベクトルの外積行列 [a]x を返す"""
    ax, ay, az = axis
    return np.array([
        [0.0, -az, ay],
        [az, 0.0, -ax],
        [-ay, ax, 0.0],
    ], dtype=np.float64)


def rodrigues(rotation_vector: Sequence[float]) -> np.ndarray:
    """
    軸角度ベクトルを回転行列に変換する（Rodriguesの公式）。

    R = I + sin(θ)K + (1 - cos(θ))K²
    θはベクトルの長さ、Kは単位回転軸の外積行列。

    Args:
        rotation_vector: 回転軸 × 回転角（ラジアン）の3次元ベクトル

    Returns:
        3x3 回転行列
    """
    vec = np.asarray(rotation_vector, dtype=np.float64).reshape(3)
    angle = float(np.linalg.norm(vec))
    if angle == 0.0:
        return np.eye(3)

    k = skew(vec / angle)
    return np.eye(3) + np.sin(angle) * k + (1.0 - np.cos(angle)) * (k @ k)


def compose_rotation(theta: float, phi: float) -> np.ndarray:
    """
    ヨー・ピッチから視線方向の回転行列を合成する。

    1. R1: 鉛直軸 (0, 1, 0) 周りに theta 回転
    2. axis2 = R1 · (1, 0, 0): ヨー適用後の水平軸
    3. R2: axis2 周りに phi 回転
    4. R = R2 · R1

    Args:
        theta: ヨー角（度）
        phi: ピッチ角（度）

    Returns:
        3x3 回転行列
    """
    theta_rad = np.radians(theta)
    phi_rad = np.radians(phi)

    r1 = rodrigues(Y_AXIS * theta_rad)
    axis2 = r1 @ X_AXIS
    r2 = rodrigues(axis2 * phi_rad)
    return r2 @ r1


def is_rotation_matrix(matrix: np.ndarray, atol: float = 1e-9) -> bool:
    """直交かつ行列式+1（鏡映を含まない）かを判定する"""
    matrix = np.asarray(matrix, dtype=np.float64)
    if matrix.shape != (3, 3):
        return False
    orthonormal = np.allclose(matrix.T @ matrix, np.eye(3), atol=atol)
    return bool(orthonormal and abs(np.linalg.det(matrix) - 1.0) <= atol)

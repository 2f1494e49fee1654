#!/usr/bin/env python3
"""
equi2persp - 360度Equirectangular画像 → 透視投影画像 変換ツール
メインエントリポイント

視野角・ヨー・ピッチ・出力サイズを指定して、
360度画像から通常のカメラで撮ったような透視投影画像を切り出す。

Usage:
    python main.py pano.jpg -o view.jpg                       # 正面を切り出し
    python main.py pano.jpg -o view.jpg --theta 80 --phi 33   # 向きを指定
    python main.py --help                                     # ヘルプ表示
"""

import sys
import argparse
import json
import logging
import time
from pathlib import Path

# プロジェクトルートをパスに追加
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

import config as app_config
from config import PerspectiveConfig, INTERPOLATION_MODES, VERTICAL_BORDER_MODES
from core.exceptions import PerspectiveError, InvalidParameterError
from core.image_models import PerspectiveRequest
from processing.equirectangular import EquirectangularProcessor
from utils.image_io import load_source_image, write_image, encode_params
from utils.logger import setup_logger, get_logger, set_log_level

logger = get_logger(__name__)


def parse_arguments(argv=None):
    """コマンドライン引数を解析する。"""
    parser = argparse.ArgumentParser(
        prog="equi2persp",
        description="360度Equirectangular画像から透視投影画像を切り出すツール",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
使用例:
  python main.py pano.jpg -o view.jpg                            正面 60度
  python main.py pano.jpg -o view.jpg --fov 90 --theta 180       真後ろを90度で
  python main.py pano.jpg -o view.png --phi -30 --height 1080    下向き
  python main.py pano.jpg -o view.jpg --config settings.json     設定ファイル指定

角度の向き:
  theta : 鉛直軸周りのヨー（正で右方向）
  phi   : ヨー適用後の水平軸周りのピッチ（正で上方向）
        """
    )

    parser.add_argument("input", type=str, help="入力Equirectangular画像パス")
    parser.add_argument(
        "-o", "--output",
        type=str,
        required=True,
        help="出力画像パス（拡張子でフォーマットを決定）"
    )

    parser.add_argument("--fov", type=float, default=app_config.DEFAULT_FOV,
                        help=f"水平視野角（度、0-180の開区間、デフォルト: {app_config.DEFAULT_FOV}）")
    parser.add_argument("--theta", type=float, default=app_config.DEFAULT_THETA,
                        help="ヨー角（度）")
    parser.add_argument("--phi", type=float, default=app_config.DEFAULT_PHI,
                        help="ピッチ角（度）")
    parser.add_argument("--height", type=int, default=app_config.DEFAULT_OUTPUT_HEIGHT,
                        help=f"出力画像の高さ（デフォルト: {app_config.DEFAULT_OUTPUT_HEIGHT}）")
    parser.add_argument("--width", type=int, default=app_config.DEFAULT_OUTPUT_WIDTH,
                        help=f"出力画像の幅（デフォルト: {app_config.DEFAULT_OUTPUT_WIDTH}）")

    parser.add_argument(
        "--interpolation",
        type=str,
        choices=sorted(INTERPOLATION_MODES),
        default=None,
        help="補間方式（デフォルト: cubic）"
    )
    parser.add_argument(
        "--vertical-border",
        type=str,
        choices=sorted(VERTICAL_BORDER_MODES),
        default=None,
        help="上下端の境界処理（デフォルト: replicate）"
    )
    parser.add_argument(
        "--border-value",
        type=float,
        default=None,
        help="--vertical-border constant の塗りつぶし値"
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="サンプリング座標計算のスレッド数（0で自動）"
    )
    parser.add_argument(
        "--keep-alpha",
        action="store_true",
        default=False,
        help="アルファチャンネル・16bit深度を保持して読み込む"
    )
    parser.add_argument(
        "--jpeg-quality",
        type=int,
        default=None,
        help="JPEG出力品質（0-100）"
    )

    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="設定ファイルパス（JSON形式）"
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="ログファイルパス（指定時のみファイル出力）"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        default=False,
        help="詳細ログを出力"
    )

    return parser.parse_args(argv)


def load_config(config_path: str = None) -> PerspectiveConfig:
    """
    設定を読み込む。

    JSONファイルが指定されていればデフォルト設定にマージする。
    """
    if not config_path:
        return PerspectiveConfig()

    path = Path(config_path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise InvalidParameterError('config', str(path), f"設定ファイルを読み込めません: {e}") from e

    if not isinstance(data, dict):
        raise InvalidParameterError('config', str(path), "設定ファイルはJSONオブジェクトである必要があります")

    logger.info(f"設定ファイルを読み込みました: {path}")
    return PerspectiveConfig.from_dict(data)


def apply_cli_overrides(config: PerspectiveConfig, args) -> PerspectiveConfig:
    """明示指定されたCLI引数で設定を上書きする。"""
    if args.interpolation is not None:
        config.remap.interpolation = args.interpolation
    if args.vertical_border is not None:
        config.remap.vertical_border = args.vertical_border
    if args.border_value is not None:
        config.remap.border_value = args.border_value
    if args.workers is not None:
        config.projection.num_workers = args.workers
    if args.keep_alpha:
        config.io.keep_alpha = True
    if args.jpeg_quality is not None:
        config.io.jpeg_quality = args.jpeg_quality
    return config.validate()


def run_cli(args) -> int:
    """
    変換を実行する。

    Returns:
        終了コード（0: 成功, 1: 失敗）
    """
    try:
        config = apply_cli_overrides(load_config(args.config), args)
        request = PerspectiveRequest(
            fov=args.fov, theta=args.theta, phi=args.phi,
            height=args.height, width=args.width,
        ).validate()

        logger.info("=" * 60)
        logger.info("equi2persp")
        logger.info("=" * 60)
        logger.info(f"入力画像: {args.input}")
        logger.info(f"出力先:   {args.output}")
        logger.info(f"視野角={request.fov}, theta={request.theta}, phi={request.phi}, "
                    f"出力={request.width}x{request.height}")

        source = load_source_image(args.input, keep_alpha=config.io.keep_alpha)
        logger.info(f"入力情報: {source.width}x{source.height}, "
                    f"{source.channels}ch, dtype={source.dtype}")

        processor = EquirectangularProcessor(config)
        start = time.perf_counter()
        perspective = processor.to_perspective(source, request)
        elapsed = time.perf_counter() - start
        logger.info(f"変換時間: {elapsed:.3f} 秒")

        params = encode_params(args.output, config.io.jpeg_quality, config.io.png_compression)
        output_path = write_image(args.output, perspective, params)
    except PerspectiveError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1

    logger.info("-" * 60)
    logger.info(f"完了: {output_path}")
    return 0


def main(argv=None):
    """メインエントリポイント。"""
    args = parse_arguments(argv)

    setup_logger(log_file=args.log_file)
    if args.verbose:
        set_log_level(logging.DEBUG)

    sys.exit(run_cli(args))


if __name__ == "__main__":
    main()

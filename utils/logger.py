"""
ロギングユーティリティ - equi2persp用

ルートロガー 'equi2persp' の下に階層的な子ロガーを配置し、
コンソール（カラー）と任意のファイル（ローテーション）への出力を制御する。

使い方:
    # 各モジュールの冒頭で
    from utils.logger import get_logger
    logger = get_logger(__name__)

    logger.debug("サンプリング座標の詳細")
    logger.info("変換完了")
    logger.warning("縮退レイが多い")
    logger.error("画像の読み込みに失敗")
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional, Union

# アプリケーションのルートロガー名
ROOT_LOGGER_NAME = 'equi2persp'

# ログローテーション設定
MAX_LOG_BYTES = 5 * 1024 * 1024   # 5MB
BACKUP_COUNT = 3                   # 3世代保持

LOG_FORMAT = '%(levelname)s | %(asctime)s | %(shortname)s | %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _short_name(name: str) -> str:
    """ルートロガー名を除いた表示用のモジュール名を返す。

    例: 'equi2persp.core.sphere' -> 'core.sphere'
         'equi2persp.__main__'   -> 'main'
    """
    prefix = ROOT_LOGGER_NAME + '.'
    if name.startswith(prefix):
        name = name[len(prefix):]
    if name == '__main__':
        return 'main'
    return name


class _ShortNameFormatter(logging.Formatter):
    """モジュール名を短縮表示するフォーマッター"""

    def format(self, record):
        record.shortname = _short_name(record.name)
        return super().format(record)


class ColoredFormatter(_ShortNameFormatter):
    """カラー出力をサポートするフォーマッター"""

    COLORS = {
        'DEBUG': '\033[36m',      # シアン
        'INFO': '\033[32m',       # 緑
        'WARNING': '\033[33m',    # 黄
        'ERROR': '\033[31m',      # 赤
        'CRITICAL': '\033[35m',   # マゼンタ
    }
    RESET = '\033[0m'

    def format(self, record):
        # 他のハンドラに色コードが漏れないようレコードを複製する
        record = logging.makeLogRecord(record.__dict__)
        color = self.COLORS.get(record.levelname, self.RESET)
        record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


_initialized = False


def setup_logger(name: str = ROOT_LOGGER_NAME, level: int = logging.INFO,
                 log_file: Optional[Union[str, Path]] = None,
                 use_color: bool = True) -> logging.Logger:
    """
    ルートロガーをセットアップ（CLI起動時に1回だけ呼ぶ）

    Parameters:
    -----------
    name : str
        ルートロガー名（通常変更不要）
    level : int
        ログレベル（logging.DEBUG, INFO, WARNING等）
    log_file : str or Path, optional
        ログファイルパス。Noneの場合はファイル出力しない
    use_color : bool
        コンソール出力でカラーを使用するか

    Returns:
    --------
    logging.Logger
        設定済みルートロガー
    """
    global _initialized

    logger = logging.getLogger(name)

    # 既に初期化済みの場合はレベルだけ更新して返す
    if _initialized:
        set_log_level(level)
        return logger

    logger.setLevel(level)
    # 親ロガーへの伝搬を防止（二重出力回避）
    logger.propagate = False

    # ---- コンソールハンドラ ----
    formatter_cls = ColoredFormatter if use_color else _ShortNameFormatter
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setLevel(level)
    stream_handler.setFormatter(formatter_cls(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(stream_handler)

    # ---- ファイルハンドラ（ローテーション付き） ----
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=MAX_LOG_BYTES,
            backupCount=BACKUP_COUNT,
            encoding='utf-8',
        )
        file_handler.setLevel(logging.DEBUG)  # ファイルには全レベル出力
        file_handler.setFormatter(_ShortNameFormatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(file_handler)

    _initialized = True
    return logger


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """
    モジュール用ロガーを取得する。

    ルートロガー 'equi2persp' の子ロガーを返す。
    例: get_logger('core.sphere')
        → logging.getLogger('equi2persp.core.sphere')

    Parameters:
    -----------
    name : str
        モジュール名（通常 __name__ を渡す）

    Returns:
    --------
    logging.Logger
        ルートロガーの子ロガー
    """
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + '.'):
        return logging.getLogger(name)
    return logging.getLogger(f'{ROOT_LOGGER_NAME}.{name}')


def set_log_level(level: int) -> None:
    """
    アプリケーション全体のログレベルを動的に変更する。

    Parameters:
    -----------
    level : int
        logging.DEBUG, logging.INFO 等
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)
    for handler in root.handlers:
        # ファイルハンドラは常にDEBUG（全記録）のままにする
        if isinstance(handler, logging.handlers.RotatingFileHandler):
            continue
        handler.setLevel(level)

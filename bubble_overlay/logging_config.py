"""
Logging setup.

Console output plus optional day+size rotated log files:
overlay_2026-01-12.log, overlay_2026-01-12_01.log, ...
Errors are additionally written to error_<date>.log.
"""

import logging
from datetime import datetime, timedelta
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
PARTS_PER_DAY = 10


class DailyRotatingFileHandler(RotatingFileHandler):
    """
    One file per day, split into numbered parts past max_bytes.
    Files older than keep_days are deleted when the handler opens.
    """

    def __init__(self, log_dir: str, base_name: str = "overlay", max_bytes: int = 20 * 1024 * 1024, keep_days: int = 14):
        self.log_dir = Path(log_dir)
        self.base_name = base_name
        self.keep_days = keep_days
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self._day = _today()

        super().__init__(
            filename=str(self._path_for(self._day)),
            maxBytes=max_bytes,
            backupCount=PARTS_PER_DAY,
            encoding="utf-8",
        )
        self._remove_expired()

    def _path_for(self, day: str) -> Path:
        return self.log_dir / f"{self.base_name}_{day}.log"

    def shouldRollover(self, record):
        return self._day != _today() or super().shouldRollover(record)

    def doRollover(self):
        today = _today()
        if self._day == today:
            super().doRollover()
            return
        if self.stream:
            self.stream.close()
        self._day = today
        self.baseFilename = str(self._path_for(today))
        self.stream = self._open()

    def rotation_filename(self, default_name):
        # overlay_2026-01-12.log.1 -> overlay_2026-01-12_01.log
        if ".log." in default_name:
            base, num = default_name.rsplit(".log.", 1)
            return f"{base}_{num.zfill(2)}.log"
        return default_name

    def _remove_expired(self):
        cutoff = datetime.now() - timedelta(days=self.keep_days)
        for log_file in self.log_dir.glob(f"{self.base_name}_*.log"):
            day = log_file.stem[len(self.base_name) + 1:][:10]
            try:
                if datetime.strptime(day, "%Y-%m-%d") < cutoff:
                    log_file.unlink()
            except (ValueError, OSError):
                continue


def _today() -> str:
    return datetime.now().strftime("%Y-%m-%d")


def setup_logging(log_level: str = "INFO", log_dir: Optional[str] = None) -> None:
    """
    Configure the root logger.

    Args:
        log_level: DEBUG/INFO/WARNING/ERROR
        log_dir: when set, also write rotated files into this directory
    """
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_dir:
        app_handler = DailyRotatingFileHandler(log_dir=log_dir, base_name="overlay")
        app_handler.setFormatter(formatter)
        app_handler.setLevel(logging.DEBUG)
        root_logger.addHandler(app_handler)

        error_handler = DailyRotatingFileHandler(log_dir=log_dir, base_name="error")
        error_handler.setFormatter(formatter)
        error_handler.setLevel(logging.ERROR)
        root_logger.addHandler(error_handler)

    # Third-party noise
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    if log_dir:
        logging.info(f"Logging initialized, directory: {Path(log_dir).absolute()}")

"""Logging: console + file theo ngày, che thông tin nhạy cảm (mật khẩu trong URL, x-api-key)."""
import logging
import re
import sys
from datetime import date
from pathlib import Path

from ingest_api.core.config import settings


_logging_configured = False

_URL_CREDENTIALS = re.compile(r"(?P<scheme>[a-zA-Z][a-zA-Z0-9+.-]*://)[^/@\s:]+:[^/@\s]+@")
_SECRET_PAIRS = re.compile(r"(?i)(?P<key>password|x-api-key|api_key|apikey)(?P<sep>['\"]?\s*[:=]\s*['\"]?)[^\s'\"&,}]+")


def mask_secrets(text: str) -> str:
    """'http://u:p@host' -> 'http://***@host'; 'password=abc' -> 'password=***'."""
    text = _URL_CREDENTIALS.sub(r"\g<scheme>***@", text)
    return _SECRET_PAIRS.sub(r"\g<key>\g<sep>***", text)


class SecretMaskingFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = mask_secrets(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def _log_path_for(base: Path, day: str) -> Path:
    if base.suffix:
        return base.parent / f"{base.stem}-{day}{base.suffix}"
    return base / f"ingest-{day}.log"


class DailyFileHandler(logging.FileHandler):
    """Mỗi ngày một file: sang ngày mới thì đóng file cũ và mở file mới khi emit."""

    def __init__(self, base_path: str, encoding: str = "utf-8"):
        self._base_path = Path(base_path)
        self._current_day = date.today().strftime("%Y-%m-%d")
        path = _log_path_for(self._base_path, self._current_day)
        path.parent.mkdir(parents=True, exist_ok=True)
        super().__init__(str(path), encoding=encoding, mode="a")

    @property
    def current_path(self) -> Path:
        return Path(self.baseFilename)

    def emit(self, record: logging.LogRecord) -> None:
        today = date.today().strftime("%Y-%m-%d")
        if today != self._current_day:
            path = _log_path_for(self._base_path, today)
            path.parent.mkdir(parents=True, exist_ok=True)
            self.close()
            self._current_day = today
            self.baseFilename = str(path)
            self.stream = self._open()
        super().emit(record)
        self.flush()


def setup_logging() -> None:
    """Cấu hình một lần cho cả app: root logger, uvicorn, httpx (chỉ WARNING để không lộ URL có query)."""
    global _logging_configured
    if _logging_configured:
        return
    _logging_configured = True

    level = getattr(logging, settings.log_level, logging.INFO)
    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    masking = SecretMaskingFilter()

    root = logging.getLogger()
    root.setLevel(level)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(formatter)
    console.addFilter(masking)
    root.addHandler(console)

    log_file_used = None
    if settings.log_file:
        try:
            fh = DailyFileHandler(settings.log_file)
            fh.setLevel(level)
            fh.setFormatter(formatter)
            fh.addFilter(masking)
            root.addHandler(fh)
            # uvicorn.access không propagate lên root
            for name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
                logging.getLogger(name).addHandler(fh)
            log_file_used = str(fh.current_path)
        except OSError as e:
            root.warning("Không mở được log file %s: %s", settings.log_file, e)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("ingest_api").info(
        "Đã cấu hình log: mức=%s, file=%s", settings.log_level, log_file_used or "chỉ console",
    )


def get_logger(name: str = "ingest_api") -> logging.Logger:
    return logging.getLogger(name)

import json
import logging
import shutil
import time
from pathlib import Path
from typing import Any, Callable

from filelock import FileLock

from ayah_reels.core.retry import retry_file_operation

logger = logging.getLogger(__name__)


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def atomic_write_json(path: Path, payload: Any) -> None:
    ensure_dir(path.parent)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
    tmp.replace(path)


def read_json(path: Path, default: Any = None) -> Any:
    if not path.exists():
        return default
    return json.loads(path.read_text(encoding="utf-8"))


def json_lock(path: Path) -> FileLock:
    ensure_dir(path.parent)
    return FileLock(str(path.with_suffix(path.suffix + ".lock")))


def remove_tree(path: Path, sleep: Callable[[float], None] = time.sleep) -> bool:
    """Delete a working directory, retrying on lock contention. Never raises."""
    if not path.exists():
        return True
    try:
        retry_file_operation(lambda: shutil.rmtree(path), label=f"remove {path}", sleep=sleep)
    except OSError as exc:
        logger.error("Failed to remove directory %s: %s", path, exc)
        return False
    logger.info("Removed working directory %s", path)
    return True


def remove_file(path: Path, sleep: Callable[[float], None] = time.sleep) -> bool:
    try:
        retry_file_operation(lambda: path.unlink(missing_ok=True), label=f"remove {path}", sleep=sleep)
    except OSError as exc:
        logger.error("Failed to delete file %s: %s", path, exc)
        return False
    return True

"""Last-opened document persistence."""

from pathlib import Path

from loguru import logger

from json_navigator.config import LAST_OPENED_FILENAME, resolve_config_directory


class FileStateStore:
    """Keeps the last opened document path in a plain text file."""

    def __init__(self, directory: Path | None = None) -> None:
        self.directory = directory if directory is not None else resolve_config_directory()

    @property
    def path(self) -> Path:
        return self.directory / LAST_OPENED_FILENAME

    def save_last_opened(self, path: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        self.path.write_text(path + "\n", encoding="utf-8")
        logger.debug("Saved last opened path {}", path)

    def load_last_opened(self) -> str | None:
        """Return the saved path, or None if nothing is saved or the file is gone."""
        if not self.path.is_file():
            return None
        saved = self.path.read_text(encoding="utf-8").strip()
        if not saved:
            return None
        if not Path(saved).is_file():
            logger.info("Last opened file no longer exists: {}", saved)
            return None
        return saved

    def clear_last_opened(self) -> None:
        self.path.unlink(missing_ok=True)

"""Directory management for per-user archives."""

import re
from dataclasses import dataclass
from pathlib import Path
from config.settings import Settings
from logs.logger import get_logger
from utils.constants import DOWNLOADS_DIR_NAME, LOGS_DIR_NAME

logger = get_logger(__name__)


@dataclass
class UserDirs:
    """Filesystem locations owned by one user."""
    base_dir: Path
    downloads_dir: Path
    logs_dir: Path


class DirectoryManager:
    """Manages directory operations for user archives."""

    def __init__(self, settings: Settings):
        """Initialize directory manager.

        Args:
            settings: Application settings
        """
        self.settings = settings
        self.data_dir = Path(settings.data_dir)

        # Anything outside this set is replaced in usernames
        self.invalid_chars = r'[^A-Za-z0-9._-]'

    def sanitize_username(self, username: str, replacement: str = "_") -> str:
        """Turn a username into a safe single directory name.

        Args:
            username: Username as supplied by the caller
            replacement: Character to replace invalid characters with

        Returns:
            Sanitized username

        Raises:
            ValueError: If nothing usable remains
        """
        sanitized = re.sub(self.invalid_chars, replacement, (username or "").strip())
        sanitized = sanitized.strip('.')

        if not sanitized.strip(replacement):
            raise ValueError(f"Invalid username: {username!r}")

        logger.debug(f"Sanitized username: '{username}' -> '{sanitized}'")
        return sanitized

    def user_dir(self, user: str) -> Path:
        """Archive directory of an already sanitized user."""
        return self.data_dir / user

    def ensure_user_dirs(self, user: str) -> UserDirs:
        """Create the user's archive, downloads and logs directories.

        Args:
            user: Sanitized username

        Returns:
            The user's directories
        """
        base_dir = self.user_dir(user)
        dirs = UserDirs(
            base_dir=base_dir,
            downloads_dir=base_dir / DOWNLOADS_DIR_NAME,
            logs_dir=base_dir / LOGS_DIR_NAME
        )
        for directory in (dirs.base_dir, dirs.downloads_dir, dirs.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

        logger.debug(f"Directories ensured for {user}: {base_dir}")
        return dirs

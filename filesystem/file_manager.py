"""File management operations for archived media."""

import os
import zipfile
from pathlib import Path
from typing import AsyncIterator, Iterable, List, Optional
from api.models import LibraryItem
from config.settings import Settings
from logs.logger import get_logger
from utils.helpers import sanitize_title

logger = get_logger(__name__)

TEMP_SUFFIX = ".part"


class FileManager:
    """Manages media files under a user's downloads directory."""

    def __init__(self, settings: Settings):
        """Initialize file manager.

        Args:
            settings: Application settings
        """
        self.settings = settings

    def build_file_base(self, item: LibraryItem) -> str:
        """Filename without extension: ``"<safe title> - <id>"``.

        The id suffix keeps names unique when titles collide.
        """
        safe_title = sanitize_title(item.title, self.settings.max_title_length)
        return f"{safe_title} - {item.id}"

    def target_path(self, directory: Path, file_base: str, extension: str) -> Path:
        return Path(directory) / f"{file_base}.{extension}"

    def target_paths(self, directory: Path, file_base: str, extensions: Iterable[str]) -> List[Path]:
        return [self.target_path(directory, file_base, ext) for ext in extensions]

    def all_exist(self, paths: Iterable[Path]) -> bool:
        """Check that every path exists as a file."""
        return all(path.is_file() for path in paths)

    async def write_stream(self, file_path: Path, chunks: AsyncIterator[bytes]) -> int:
        """Stream chunks into a file, atomically through a temporary sibling.

        The destination only appears once every chunk is on disk; a failure
        while receiving or writing leaves no ``.part`` file behind.

        Args:
            file_path: Destination path
            chunks: Body chunks, e.g. ``response.content.iter_chunked(n)``

        Returns:
            Number of bytes written

        Raises:
            OSError: If the file cannot be written
            Exception: Whatever the chunk source raises
        """
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = file_path.with_name(file_path.name + TEMP_SUFFIX)
        bytes_written = 0

        try:
            with open(temp_path, 'wb') as f:
                async for chunk in chunks:
                    f.write(chunk)
                    bytes_written += len(chunk)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, file_path)
        except Exception:
            # Clean up partial download
            if temp_path.exists():
                try:
                    temp_path.unlink()
                    logger.debug(f"Cleaned up partial download: {temp_path}")
                except OSError:
                    logger.debug(f"Failed to clean up partial download: {temp_path}")
            raise

        logger.debug(f"Wrote {bytes_written} bytes to {file_path}")
        return bytes_written

    def cleanup_temp_files(self, directory: Path, pattern: str = f"*{TEMP_SUFFIX}") -> int:
        """Remove partial downloads left by an interrupted run.

        Args:
            directory: Directory to clean
            pattern: File pattern to match (glob pattern)

        Returns:
            Number of files cleaned up
        """
        cleaned_count = 0
        directory = Path(directory)
        if not directory.exists():
            return 0

        for temp_file in directory.glob(pattern):
            if temp_file.is_file():
                try:
                    temp_file.unlink()
                    cleaned_count += 1
                    logger.debug(f"Cleaned up temp file: {temp_file}")
                except OSError as e:
                    logger.warning(f"Failed to clean up {temp_file}: {e}")

        if cleaned_count > 0:
            logger.debug(f"Cleaned up {cleaned_count} temporary files")

        return cleaned_count

    def export_archive(self, user_dir: Path, output_path: Optional[Path] = None) -> Path:
        """Zip a user's whole archive directory.

        Args:
            user_dir: The user's archive directory
            output_path: Destination zip (defaults to ``<user>-archive.zip``
                next to the user directory)

        Returns:
            Path of the written zip file

        Raises:
            FileNotFoundError: If the user directory does not exist
        """
        user_dir = Path(user_dir)
        if not user_dir.is_dir():
            raise FileNotFoundError(f"User archive not found: {user_dir}")

        output_path = Path(output_path or user_dir.parent / f"{user_dir.name}-archive.zip")
        output_path.parent.mkdir(parents=True, exist_ok=True)

        file_count = 0
        with zipfile.ZipFile(output_path, 'w', compression=zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
            for path in sorted(user_dir.rglob('*')):
                if not path.is_file() or path.resolve() == output_path.resolve():
                    continue
                if path.name.endswith(TEMP_SUFFIX):
                    continue
                archive.write(path, path.relative_to(user_dir).as_posix())
                file_count += 1

        logger.info(f"Exported {file_count} files from {user_dir} to {output_path}")
        return output_path

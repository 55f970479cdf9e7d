"""Filesystem management package for user archives."""

from .directory_manager import DirectoryManager, UserDirs
from .file_manager import FileManager

__all__ = [
    "DirectoryManager",
    "UserDirs",
    "FileManager"
]

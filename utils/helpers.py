"""Helper utility functions for the Suno library archiver."""

import re
from urllib.parse import urlsplit, urlunsplit
from .constants import KNOWN_AUDIO_EXTENSIONS


# Characters the archive never lets into a filename
_INVALID_TITLE_CHARS = re.compile(r'[/\\?%*:|"<>\x00-\x1f]')
_WHITESPACE = re.compile(r'\s+')


def format_duration(seconds: float) -> str:
    """Format duration in seconds to human-readable string.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted string (e.g., "1m 30s", "2h 15m")
    """
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = int(seconds // 60)
        remaining_seconds = seconds % 60
        if remaining_seconds < 1:
            return f"{minutes}m"
        else:
            return f"{minutes}m {remaining_seconds:.0f}s"
    else:
        hours = int(seconds // 3600)
        remaining_minutes = int((seconds % 3600) // 60)
        if remaining_minutes == 0:
            return f"{hours}h"
        else:
            return f"{hours}h {remaining_minutes}m"


def truncate_string(text: str, max_length: int, suffix: str = "...") -> str:
    """Truncate a string to maximum length with optional suffix.

    Args:
        text: Text to truncate
        max_length: Maximum length including suffix
        suffix: Suffix to add when truncating

    Returns:
        Truncated string
    """
    if len(text) <= max_length:
        return text

    if len(suffix) >= max_length:
        return text[:max_length]

    return text[:max_length - len(suffix)] + suffix


def sanitize_title(title: str, max_length: int = 100) -> str:
    """Turn a display title into a filesystem-safe filename fragment.

    Invalid path characters become ``-``, runs of whitespace collapse to a
    single space and the result is trimmed and cut to ``max_length``.

    Args:
        title: Display title as received from the API
        max_length: Maximum length of the returned fragment

    Returns:
        Safe title fragment, ``"untitled"`` when nothing usable is left
    """
    safe = _WHITESPACE.sub(' ', title or '')
    safe = _INVALID_TITLE_CHARS.sub('-', safe).strip()
    safe = safe[:max_length].strip()

    # A bare "." or ".." would resolve to a directory
    if not safe or set(safe) == {'.'}:
        return "untitled"

    return safe


def replace_url_extension(url: str, extension: str) -> str:
    """Swap the audio extension at the end of a URL's path.

    Query string and fragment are left untouched. URLs whose path does not
    end in a known audio extension are returned unchanged.

    Args:
        url: Primary media URL
        extension: Target extension without the dot

    Returns:
        URL pointing at the requested format
    """
    parts = urlsplit(url)
    stem, dot, current = parts.path.rpartition('.')
    if not dot or current.lower() not in KNOWN_AUDIO_EXTENSIONS:
        return url

    return urlunsplit(parts._replace(path=f"{stem}.{extension}"))

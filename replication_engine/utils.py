"""
Utility functions for the replication engine
"""
import os
import re
import tempfile
from datetime import datetime, timezone
from pathlib import Path

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9.\-]")


def sanitize_filename(filename: str) -> str:
    """Replace every character outside [A-Za-z0-9.-] with an underscore"""
    return _UNSAFE_FILENAME_CHARS.sub("_", filename)


def utc_timestamp() -> str:
    """ISO-8601 timestamp in UTC, millisecond precision"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def file_timestamp(timestamp: str) -> str:
    """Turn an ISO timestamp into something safe for file names"""
    return re.sub(r"[:.]", "-", timestamp)


def format_file_size(size: int) -> str:
    """Human readable byte count"""
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.2f} KB"
    return f"{size / (1024 * 1024):.2f} MB"


def estimate_tokens(text: str) -> int:
    """Rough token estimation (4 chars ≈ 1 token)"""
    return len(text) // 4


def get_language_tag(file_path: str) -> str:
    """Get language tag for syntax highlighting"""
    ext_map = {
        '.py': 'python',
        '.js': 'javascript',
        '.ts': 'typescript',
        '.jsx': 'jsx',
        '.tsx': 'tsx',
        '.json': 'json',
        '.html': 'html',
        '.css': 'css',
        '.scss': 'scss',
        '.md': 'markdown',
        '.yml': 'yaml',
        '.yaml': 'yaml',
        '.sh': 'bash',
    }
    ext = Path(file_path).suffix.lower()
    return ext_map.get(ext, ext.lstrip('.') or 'text')


def write_text_atomic(file_path: Path, content: str) -> None:
    """
    Replace a file's content in one step.

    Content is written verbatim (no newline translation) to a temporary file in
    the same directory, then renamed over the target.
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    tmp = tempfile.NamedTemporaryFile('w', delete=False, dir=file_path.parent,
                                      encoding='utf-8', newline='')
    try:
        with tmp:
            tmp.write(content)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp.name, file_path)
    except BaseException:
        # No temp file survives a failed write
        Path(tmp.name).unlink(missing_ok=True)
        raise


def read_text(file_path: Path) -> str:
    """Read a UTF-8 text file keeping its newlines untouched"""
    with open(file_path, 'r', encoding='utf-8', newline='') as f:
        return f.read()

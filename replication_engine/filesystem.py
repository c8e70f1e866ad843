"""
Directory walking, skip rules and local codebase copy management
"""
import logging
import os
import shutil
from dataclasses import dataclass, replace
from pathlib import Path
from typing import FrozenSet, Iterable, Iterator, List, Optional

from .exceptions import TraversalReadError

logger = logging.getLogger(__name__)

UNREADABLE_PLACEHOLDER = "[UNREADABLE FILE: {error}]"

DEFAULT_SKIP_DIRS = frozenset({
    "node_modules", ".git", ".next", "dist", "build", "venv",
    "__pycache__", "coverage", ".vscode", ".idea",
})

DEFAULT_SKIP_FILES = frozenset({
    "package-lock.json", "yarn.lock", ".DS_Store",
    ".env", ".env.local", ".env.example",
})

DEFAULT_SKIP_EXTENSIONS = frozenset({
    ".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp", ".ico", ".pdf",
    ".zip", ".tar", ".gz", ".mp4", ".mp3", ".woff", ".woff2", ".ttf",
    ".eot", ".exe", ".bin",
})

DEFAULT_INCLUDE_EXTENSIONS = frozenset({
    ".js", ".jsx", ".ts", ".tsx", ".json", ".css", ".scss", ".html", ".py",
})

# Used when mirroring a source tree into the workspace
COPY_SKIP_DIRS = frozenset({"node_modules", ".git", "dist", "build", ".next", "coverage"})
COPY_SKIP_EXTENSIONS = frozenset({".log", ".tmp", ".cache"})


def _normalize_extensions(extensions: Iterable[str]) -> FrozenSet[str]:
    normalized = set()
    for ext in extensions:
        ext = ext.strip().lower()
        if not ext:
            continue
        normalized.add(ext if ext.startswith(".") else f".{ext}")
    return frozenset(normalized)


@dataclass(frozen=True)
class SkipRules:
    """Immutable set of rules deciding which directories and files a walk keeps"""

    skip_dirs: FrozenSet[str] = DEFAULT_SKIP_DIRS
    skip_files: FrozenSet[str] = DEFAULT_SKIP_FILES
    skip_extensions: FrozenSet[str] = DEFAULT_SKIP_EXTENSIONS
    # Empty allow-list means every extension not denied is kept
    include_extensions: FrozenSet[str] = DEFAULT_INCLUDE_EXTENSIONS

    def __post_init__(self):
        object.__setattr__(self, "skip_dirs", frozenset(self.skip_dirs))
        object.__setattr__(self, "skip_files", frozenset(self.skip_files))
        object.__setattr__(self, "skip_extensions", _normalize_extensions(self.skip_extensions))
        object.__setattr__(self, "include_extensions", _normalize_extensions(self.include_extensions))

    def with_include_extensions(self, extensions: Iterable[str]) -> "SkipRules":
        return replace(self, include_extensions=frozenset(extensions))

    def should_skip_directory(self, dir_name: str) -> bool:
        return dir_name in self.skip_dirs

    def file_skip_reason(self, file_name: str) -> Optional[str]:
        """Return why a file is skipped, or None when it should be kept"""
        ext = os.path.splitext(file_name)[1].lower()

        if file_name.startswith(".") or file_name in self.skip_files:
            return "file/extension skip"

        if ext in self.skip_extensions:
            return "file/extension skip"

        if self.include_extensions and ext not in self.include_extensions:
            return "not in INCLUDE_EXTENSIONS"

        return None


@dataclass(frozen=True)
class WalkEntry:
    """One item visited by walk_directory"""
    path: Path
    relative_path: str  # forward-slash normalized
    is_dir: bool = False
    skip_reason: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.skip_reason is not None


@dataclass
class FileContents:
    content: str
    size: int


def _sorted_children(directory: Path) -> List[os.DirEntry]:
    with os.scandir(directory) as it:
        entries = list(it)
    dirs = sorted((e for e in entries if e.is_dir(follow_symlinks=False)), key=lambda e: e.name)
    files = sorted((e for e in entries if not e.is_dir(follow_symlinks=False)), key=lambda e: e.name)
    return dirs + files


def walk_directory(root: Path, rules: SkipRules) -> Iterator[WalkEntry]:
    """
    Walk `root` pre-order and yield an entry for every file and skipped directory.

    At each level directories come before files, each group sorted by name, so
    the visiting order only depends on the tree's contents.
    """
    root = Path(root)

    def walk(current: Path) -> Iterator[WalkEntry]:
        try:
            children = _sorted_children(current)
        except OSError as e:
            relative = current.relative_to(root).as_posix()
            logger.warning("Error walking directory %s: %s", current, e)
            yield WalkEntry(current, relative, is_dir=True,
                            skip_reason=f"unreadable directory ({e.strerror or e})")
            return

        for child in children:
            child_path = Path(child.path)
            relative = child_path.relative_to(root).as_posix()

            if child.is_dir(follow_symlinks=False):
                if rules.should_skip_directory(child.name):
                    yield WalkEntry(child_path, relative, is_dir=True, skip_reason="directory skip")
                    continue
                yield from walk(child_path)
            elif child.is_symlink() and Path(child.path).is_dir():
                yield WalkEntry(child_path, relative, is_dir=True, skip_reason="symlinked directory")
            elif not child.is_file():
                yield WalkEntry(child_path, relative, skip_reason="not a regular file")
            elif "\n" in child.name:
                yield WalkEntry(child_path, relative, skip_reason="unsupported file name")
            else:
                yield WalkEntry(child_path, relative, skip_reason=rules.file_skip_reason(child.name))

    yield from walk(root)


def read_file_contents(file_path: Path) -> FileContents:
    """
    Read a source file as UTF-8 text.

    Raises:
        TraversalReadError: If the file cannot be read
    """
    try:
        data = Path(file_path).read_bytes()
    except OSError as e:
        raise TraversalReadError(str(file_path), e.strerror or str(e)) from e
    return FileContents(content=data.decode("utf-8", errors="replace"), size=len(data))


def render_tree(root: Path, rules: SkipRules, max_level: int = 3) -> List[str]:
    """Indented directory listing of the first `max_level` levels, honoring skip rules"""
    lines: List[str] = []

    def walk(directory: Path, level: int) -> None:
        if level > max_level:
            return
        indent = "  " * level
        try:
            children = _sorted_children(directory)
        except OSError as e:
            lines.append(f"{indent}❌ Error reading directory {directory}: {e}")
            return

        for child in children:
            if child.is_dir(follow_symlinks=False) and not rules.should_skip_directory(child.name):
                lines.append(f"{indent}📂 {child.name}/")
                if level < max_level:
                    walk(Path(child.path), level + 1)

        if level < max_level:
            for child in children:
                if child.is_file() and rules.file_skip_reason(child.name) is None:
                    lines.append(f"{indent}  📄 {child.name}")

    walk(Path(root), 0)
    return lines


def _copy_ignore(directory: str, names: List[str]) -> List[str]:
    ignored = []
    for name in names:
        full = os.path.join(directory, name)
        if os.path.isdir(full):
            if name in COPY_SKIP_DIRS:
                ignored.append(name)
        elif not os.path.islink(full) and not os.path.isfile(full):
            ignored.append(name)
        elif os.path.splitext(name)[1] in COPY_SKIP_EXTENSIONS:
            ignored.append(name)
    return ignored


def copy_codebase(source: Path, target: Path) -> int:
    """
    Mirror `source` into `target` (which is cleared first).

    Returns:
        Number of files copied
    """
    source = Path(source).resolve()
    target = Path(target)

    if not source.is_dir():
        raise NotADirectoryError(f"Path must be a directory: {source}")

    clear_directory(target)
    shutil.copytree(source, target, ignore=_copy_ignore, symlinks=True)
    return sum(1 for p in target.rglob("*") if p.is_file())


def clear_directory(target: Path) -> bool:
    """Remove a directory tree; returns False when there was nothing to remove"""
    target = Path(target)
    if not target.exists():
        return False
    shutil.rmtree(target)
    return True

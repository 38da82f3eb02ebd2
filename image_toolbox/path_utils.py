"""Path normalization utilities.

- Absolute paths for everything handed to the filesystem.
- Download targets never overwrite an existing file.

Keep this module free of Qt dependencies.
"""

from __future__ import annotations

from pathlib import Path

_DRIVE_PREFIX_LEN = 2
_MAX_NAME_ATTEMPTS = 10_000


def _normalize_drive_letter(path_str: str) -> str:
    # "c:\\" -> "C:\\" on Windows
    if len(path_str) >= _DRIVE_PREFIX_LEN and path_str[1] == ":":
        return path_str[0].upper() + path_str[1:]
    return path_str


def abs_path(path: str | Path) -> Path:
    """Return an absolute path without requiring that it exists."""
    p = Path(path).expanduser()
    try:
        return p.resolve(strict=False)
    except OSError:
        return p.absolute()


def abs_path_str(path: str | Path) -> str:
    return _normalize_drive_letter(str(abs_path(path)))


def abs_dir(path: str | Path) -> Path:
    """Absolute directory path.

    If the path exists and is not a directory, returns its parent.
    """
    p = abs_path(path)
    if p.exists() and not p.is_dir():
        return p.parent
    return p


def abs_dir_str(path: str | Path) -> str:
    return _normalize_drive_letter(str(abs_dir(path)))


def default_download_dir() -> Path:
    downloads = Path.home() / "Downloads"
    return downloads if downloads.is_dir() else Path.home()


def safe_file_name(name: str) -> str:
    """Strip any directory part so a suggested name cannot escape the target dir."""
    base = Path(str(name).replace("\\", "/")).name
    return base or "image"


def unique_path(directory: str | Path, name: str) -> Path:
    """Return directory/name, or directory/'stem (n).ext' if that already exists."""
    folder = abs_dir(directory)
    candidate = folder / safe_file_name(name)
    if not candidate.exists():
        return candidate
    stem, suffix = candidate.stem, candidate.suffix
    for n in range(1, _MAX_NAME_ATTEMPTS):
        candidate = folder / f"{stem} ({n}){suffix}"
        if not candidate.exists():
            return candidate
    raise FileExistsError(str(folder / name))

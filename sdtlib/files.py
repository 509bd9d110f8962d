"""File management with idempotent operations and templating."""

import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional, Union

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from .paths import TEMPLATES_DIR

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    keep_trailing_newline=True,
    trim_blocks=True,
    lstrip_blocks=True,
    undefined=StrictUndefined,
)


def read_file(path: Union[str, Path], errors: str = "strict") -> str:
    """
    Read file content, or "" if the file does not exist.

    Args:
        path: File to read
        errors: UTF-8 decode error handling; "replace" for files that are
                only scanned, never written back
    """
    path = Path(path)
    if not path.exists():
        return ""
    return path.read_text(encoding="utf-8", errors=errors)


def read_bytes(path: Union[str, Path]) -> bytes:
    """Read file content as bytes, or b"" if the file does not exist."""
    path = Path(path)
    if not path.exists():
        return b""
    return path.read_bytes()


def ensure_dir(path: Union[str, Path], mode: Optional[int] = None) -> bool:
    """
    Idempotently ensure a directory exists.

    Returns:
        True if the directory was created
    """
    path = Path(path)
    if path.is_dir():
        return False
    path.mkdir(parents=True, exist_ok=True)
    if mode is not None:
        path.chmod(mode)
    return True


def ensure_file(
    path: Union[str, Path],
    content: str,
    mode: Optional[int] = None,
) -> bool:
    """
    Idempotently ensure a file exists with specific content.

    The write is atomic: content goes to a temp file in the same directory
    which is then renamed over the target. An existing file keeps its mode
    unless ``mode`` is given. A symlink at ``path`` is replaced by a file.

    Args:
        path: Target file path
        content: Desired file content
        mode: File permissions (e.g., 0o644)

    Returns:
        True if the file was written
    """
    path = Path(path)

    if path.is_file() and read_bytes(path) == content.encode("utf-8"):
        if mode is not None and (path.stat().st_mode & 0o777) != mode:
            path.chmod(mode)
            return True
        return False

    if mode is None:
        mode = (path.stat().st_mode & 0o777) if path.is_file() else 0o644

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=path.parent,
            delete=False,
            prefix=f".{path.name}.",
            suffix=".tmp",
        ) as tmp:
            tmp.write(content)
            tmp_path = tmp.name
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
        tmp_path = None
    finally:
        if tmp_path and Path(tmp_path).exists():
            Path(tmp_path).unlink()
    return True


def copy_path(src: Union[str, Path], dest: Union[str, Path]) -> None:
    """
    Copy a file or directory tree verbatim, replacing whatever is at dest.

    Symlinks inside directory trees are copied as symlinks.
    """
    src = Path(src)
    dest = Path(dest)
    if src.is_dir() and not src.is_symlink():
        if dest.exists() or dest.is_symlink():
            remove_path(dest)
        shutil.copytree(src, dest, symlinks=True)
    else:
        dest.parent.mkdir(parents=True, exist_ok=True)
        if dest.is_dir() and not dest.is_symlink():
            shutil.rmtree(dest)
        elif dest.is_symlink() or (src.is_symlink() and dest.exists()):
            dest.unlink()
        shutil.copy2(src, dest, follow_symlinks=False)


def same_path(a: Union[str, Path], b: Union[str, Path]) -> bool:
    """
    True if two paths hold identical content.

    Symlinks compare by target, directories recursively by entry names and
    content, files byte for byte.
    """
    a = Path(a)
    b = Path(b)
    if a.is_symlink() or b.is_symlink():
        return a.is_symlink() and b.is_symlink() and os.readlink(a) == os.readlink(b)
    if a.is_dir() or b.is_dir():
        if not (a.is_dir() and b.is_dir()):
            return False
        names = sorted(p.name for p in a.iterdir())
        if names != sorted(p.name for p in b.iterdir()):
            return False
        return all(same_path(a / name, b / name) for name in names)
    return a.is_file() and b.is_file() and read_bytes(a) == read_bytes(b)


def remove_path(path: Union[str, Path]) -> bool:
    """
    Remove a file, symlink or directory tree.

    Returns:
        True if something was removed
    """
    path = Path(path)
    if path.is_symlink() or path.is_file():
        path.unlink()
        return True
    if path.is_dir():
        shutil.rmtree(path)
        return True
    return False


def render_template(template_name: str, context: dict) -> str:
    """
    Render a bundled Jinja2 template.

    Args:
        template_name: File name under sdtlib/templates/
        context: Dictionary of variables to substitute

    Returns:
        Rendered template content
    """
    return _env.get_template(template_name).render(**context)

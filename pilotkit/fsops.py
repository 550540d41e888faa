"""Filesystem helpers: directory creation, permissions, removal and renaming."""

from __future__ import annotations

import errno
import os
import re
import shutil
from typing import Union

PathArg = Union[str, "os.PathLike[str]"]

_MAX_MODE = 0o7777
_OCTAL_RE = re.compile(r"[ \t\n\v\f\r]*([+-]?)([0-7]+)")


class FileOperationError(Exception):
    """Raised when a filesystem operation fails."""


def _as_path(path: PathArg) -> str:
    if isinstance(path, (str, os.PathLike)):
        return os.fspath(path)
    raise TypeError("Expected a string as argument")


def _describe(exc: OSError) -> str:
    return exc.strerror or str(exc)


def _remove_entry(path: str) -> None:
    """Remove a file, a symlink or an empty directory, without following links."""
    if os.path.isdir(path) and not os.path.islink(path):
        os.rmdir(path)
    else:
        os.unlink(path)


def create_directory(path: PathArg, ignore_if_exists: bool = False) -> None:
    """Create ``path`` and any missing parents.

    An existing directory is never an error. An existing non-directory is an
    error unless ``ignore_if_exists`` is true.
    """
    dir_path = os.path.abspath(_as_path(path))

    if os.path.isdir(dir_path):
        return
    if os.path.lexists(dir_path):
        if ignore_if_exists:
            return
        raise FileOperationError(
            f"The path already exists and is not a directory: {dir_path}"
        )

    try:
        os.makedirs(dir_path)
    except FileExistsError:
        if os.path.isdir(dir_path) or ignore_if_exists:
            return
        raise FileOperationError(
            f"The path already exists and is not a directory: {dir_path}"
        ) from None
    except OSError as exc:
        if exc.errno == errno.ENOENT:
            message = (
                "The parent directory does not exist: "
                f"{os.path.dirname(dir_path)}"
            )
        elif exc.errno == errno.EACCES:
            message = f"Permission denied: {dir_path}"
        elif exc.errno == errno.ENOSPC:
            message = f"No space left on device: {dir_path}"
        else:
            message = f"cannot create directory '{dir_path}': {_describe(exc)}"
        raise FileOperationError(message) from exc


def parse_mode(mode: Union[str, int]) -> int:
    """Turn a mode given as an octal string ("755") or an integer into an int.

    Raises ValueError for malformed or out-of-range values and TypeError for
    values of any other type.
    """
    if isinstance(mode, str):
        if mode == "":
            raise ValueError("mode string is empty")
        match = _OCTAL_RE.fullmatch(mode)
        if match is None:
            raise ValueError(f"invalid octal mode string: '{mode}'")
        sign, digits = match.groups()
        value = int(digits, 8)
        if sign == "-":
            value = -value
    elif isinstance(mode, bool):
        raise TypeError('mode must be a string (e.g. "755") or an integer')
    elif isinstance(mode, int):
        value = mode
    elif isinstance(mode, float):
        raise ValueError("numeric mode must be an integer")
    else:
        raise TypeError('mode must be a string (e.g. "755") or an integer')

    if not 0 <= value <= _MAX_MODE:
        raise ValueError("mode out of range (must be between 0 and 0o7777)")
    return value


def set_mode(path: PathArg, mode: Union[str, int]) -> None:
    """Change the permission bits of ``path`` (links are followed)."""
    target = _as_path(path)
    value = parse_mode(mode)
    try:
        os.chmod(target, value)
    except OSError as exc:
        raise FileOperationError(_describe(exc)) from exc


def get_mode(path: PathArg) -> int:
    """Return the permission bits (0..0o777) of ``path`` (links are followed)."""
    target = _as_path(path)
    try:
        return os.stat(target).st_mode & 0o777
    except OSError as exc:
        raise FileOperationError(_describe(exc)) from exc


def remove_file(path: PathArg) -> None:
    """Remove a file or an empty directory that must exist."""
    target = _as_path(path)
    if not os.path.exists(target):
        raise FileOperationError(f"File does not exist: {target}")
    try:
        _remove_entry(target)
    except OSError as exc:
        if exc.errno == errno.EACCES:
            message = f"Permission denied: {target}"
        elif exc.errno == errno.ENOENT:
            message = f"No such file or directory: {target}"
        else:
            message = f"cannot remove file '{target}': {_describe(exc)}"
        raise FileOperationError(message) from exc


def rename(old_path: PathArg, new_path: PathArg) -> None:
    """Rename a file or directory, replacing an existing destination file."""
    old = _as_path(old_path)
    new = _as_path(new_path)

    if not old:
        raise FileOperationError("The old path is empty.")
    if not new:
        raise FileOperationError("The new path is empty.")
    if not os.path.exists(old):
        raise FileOperationError(f"Source path does not exist: {old}")
    if old == new:
        raise FileOperationError(
            "The new path must be different from the old path."
        )

    try:
        os.replace(old, new)
    except OSError as exc:
        if exc.errno == errno.EACCES:
            message = f"Permission denied: {old}"
        elif exc.errno == errno.ENOENT:
            message = f"No such file or directory: {old}"
        elif exc.errno == errno.EEXIST:
            message = f"File already exists at destination: {new}"
        else:
            message = f"cannot rename '{old}' to '{new}': {_describe(exc)}"
        raise FileOperationError(message) from exc


def remove_path(path: PathArg) -> None:
    """Remove a file, a symlink or an empty directory; the OS decides."""
    target = _as_path(path)
    try:
        _remove_entry(target)
    except FileNotFoundError:
        raise FileOperationError(
            f"cannot remove '{target}': no such file or directory"
        ) from None
    except OSError as exc:
        raise FileOperationError(
            f"cannot remove '{target}': {_describe(exc)}"
        ) from exc


def remove_tree(path: PathArg) -> None:
    """Remove ``path`` and everything below it. A symlink is removed, not followed."""
    target = _as_path(path)
    if not os.path.lexists(target):
        raise FileOperationError(
            f"cannot remove '{target}': no such file or directory"
        )
    try:
        if os.path.isdir(target) and not os.path.islink(target):
            shutil.rmtree(target)
        else:
            os.unlink(target)
    except OSError as exc:
        raise FileOperationError(
            f"cannot remove '{target}': {_describe(exc)}"
        ) from exc
"""Moving whole directory trees, across filesystems if need be."""

from __future__ import annotations

import errno
import os
import shutil
from typing import Iterator, List, Tuple, Union

PathArg = Union[str, "os.PathLike[str]"]


class MoveTreeError(Exception):
    """Raised when a directory tree cannot be moved."""


def _describe(exc: OSError) -> str:
    return exc.strerror or str(exc)


def is_within(base: PathArg, candidate: PathArg) -> bool:
    """Tell whether ``candidate`` is ``base`` itself or lies below it.

    The comparison is lexical and made component by component, so a first
    component such as ``..data`` is not mistaken for the parent directory.
    """
    base_str = os.fspath(base)
    candidate_str = os.fspath(candidate)
    if os.path.isabs(base_str) != os.path.isabs(candidate_str):
        return False
    try:
        rel = os.path.relpath(candidate_str, base_str)
    except ValueError:
        return False
    if rel == os.curdir:
        return True
    first = rel.split(os.sep, 1)[0]
    return first != os.pardir


def _walk(directory: str) -> Iterator[os.DirEntry]:
    """Yield entries below ``directory`` in pre-order, not following links.

    Directories that cannot be read are skipped.
    """
    try:
        with os.scandir(directory) as it:
            entries = list(it)
    except PermissionError:
        return
    for entry in entries:
        yield entry
        if entry.is_dir(follow_symlinks=False):
            yield from _walk(entry.path)


def _retarget(old_target: str, source_real: str, destination_real: str) -> str:
    """Point an absolute link target inside the source at the destination."""
    if not os.path.isabs(old_target):
        return old_target
    try:
        target_real = os.path.realpath(old_target)
    except OSError:
        return old_target
    if not is_within(source_real, target_real):
        return old_target
    rel = os.path.relpath(target_real, source_real)
    if rel == os.curdir:
        return destination_real
    return os.path.join(destination_real, rel)


def _move_file(path: str, dest_path: str) -> None:
    try:
        os.replace(path, dest_path)
        return
    except OSError as exc:
        if exc.errno != errno.EXDEV:
            raise MoveTreeError(
                f"cannot move '{path}' to '{dest_path}': {_describe(exc)}"
            ) from exc
    try:
        shutil.copy2(path, dest_path)
    except OSError as exc:
        raise MoveTreeError(
            f"cannot copy '{path}' to '{dest_path}': {_describe(exc)}"
        ) from exc
    try:
        os.remove(path)
    except OSError as exc:
        raise MoveTreeError(
            f"cannot remove source file '{path}' after copy: {_describe(exc)}"
        ) from exc


def _move_entries(source: str, destination: str, source_real: str,
                  destination_real: str) -> None:
    links: List[Tuple[str, str]] = []

    try:
        os.makedirs(destination, exist_ok=True)
    except OSError as exc:
        raise MoveTreeError(
            f"cannot create destination directory: {_describe(exc)}"
        ) from exc

    for entry in _walk(source):
        path = entry.path
        dest_path = os.path.join(destination, os.path.relpath(path, source))

        if entry.is_symlink():
            old_target = os.readlink(path)
            links.append(
                (dest_path, _retarget(old_target, source_real, destination_real))
            )
        elif entry.is_dir(follow_symlinks=False):
            try:
                os.makedirs(dest_path, exist_ok=True)
            except OSError as exc:
                raise MoveTreeError(
                    f"cannot create directory '{dest_path}': {_describe(exc)}"
                ) from exc
        else:
            _move_file(path, dest_path)

    try:
        shutil.rmtree(source)
    except OSError as exc:
        raise MoveTreeError(
            f"cannot remove source directory '{source}': {_describe(exc)}"
        ) from exc

    for link_path, target in links:
        try:
            os.symlink(target, link_path)
        except OSError as exc:
            raise MoveTreeError(
                f"cannot create symlink '{link_path}' -> '{target}': "
                f"{_describe(exc)}"
            ) from exc


def move_tree(source: PathArg, destination: PathArg) -> None:
    """Move the directory tree ``source`` to ``destination``.

    A missing destination on the same filesystem is reached with a single
    rename. Otherwise entries are moved one by one, merging into an existing
    destination and copying files across filesystems. Symlinks are recreated;
    an absolute target inside the source is pointed at the destination.
    """
    source = os.fspath(source)
    destination = os.fspath(destination)

    if not os.path.exists(source):
        raise MoveTreeError(f"source path does not exist: {source}")
    if not os.path.isdir(source):
        raise MoveTreeError(f"source path is not a directory: {source}")

    try:
        source_real = os.path.realpath(source)
    except OSError as exc:
        raise MoveTreeError(
            f"cannot resolve source path '{source}': {_describe(exc)}"
        ) from exc
    try:
        destination_real = os.path.realpath(destination)
    except OSError as exc:
        raise MoveTreeError(
            f"cannot resolve destination path '{destination}': {_describe(exc)}"
        ) from exc

    if is_within(source_real, destination_real):
        raise MoveTreeError(
            f"destination cannot be inside source: '{destination}' "
            f"resolves inside '{source}'"
        )

    if not os.path.exists(destination):
        try:
            os.rename(source, destination)
            return
        except OSError as exc:
            if exc.errno != errno.EXDEV:
                raise MoveTreeError(
                    f"cannot move '{source}' to '{destination}': "
                    f"{_describe(exc)}"
                ) from exc

    try:
        _move_entries(source, destination, source_real, destination_real)
    except MoveTreeError:
        raise
    except OSError as exc:
        raise MoveTreeError(str(exc)) from exc
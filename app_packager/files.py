"""Filesystem helpers used by the build pipeline.

Every helper lets :class:`OSError` propagate to the caller.
"""

import os
import pathlib
import shutil
import time


def ensure_dir(path: pathlib.Path) -> pathlib.Path:
    """Create a directory (and parents) if needed.

    :param path: Directory path.
    :returns: The same path.
    """

    path.mkdir(parents=True, exist_ok=True)
    return path


def remove_dir(path: pathlib.Path) -> None:
    """Remove a directory tree. Missing directories are ignored.

    :param path: Directory path.
    """

    if path.exists() is False:
        return
    shutil.rmtree(path)


def read_file(path: pathlib.Path) -> bytes:
    """Read a file's bytes."""

    with open(path, "rb") as f:
        return f.read()


def write_file(path: pathlib.Path, data: bytes | str) -> None:
    """Write bytes (or UTF-8 text) to a file, creating parent directories."""

    path.parent.mkdir(parents=True, exist_ok=True)
    payload: bytes = data.encode("utf-8") if isinstance(data, str) else data
    with open(path, "wb") as f:
        f.write(payload)


def copy_dir(
    src: pathlib.Path,
    dst: pathlib.Path,
    *,
    exclude_relpaths: set[str] | None = None,
) -> int:
    """Copy a project tree verbatim into ``dst``.

    :param src: Source directory.
    :param dst: Destination directory (may already exist).
    :param exclude_relpaths: POSIX paths relative to ``src`` to skip (files or directories).
    :returns: Number of files copied.
    """

    exclude_parts: list[tuple[str, ...]] = []
    for relpath in sorted(exclude_relpaths or set()):
        exclude_parts.append(pathlib.PurePosixPath(relpath).parts)

    def is_excluded(relpath: pathlib.PurePosixPath) -> bool:
        rel_tuple: tuple[str, ...] = relpath.parts
        for ex in exclude_parts:
            if len(rel_tuple) >= len(ex) and rel_tuple[0 : len(ex)] == ex:
                return True
        return False

    def raise_error(err: OSError) -> None:
        raise err

    files_copied: int = 0
    dst.mkdir(parents=True, exist_ok=True)

    for root_str, dirs, files in os.walk(src, topdown=True, onerror=raise_error):
        root_path: pathlib.Path = pathlib.Path(root_str)
        rel_root: pathlib.Path = root_path.relative_to(src)
        rel_root_posix: pathlib.PurePosixPath = pathlib.PurePosixPath(rel_root.as_posix())

        (dst / rel_root).mkdir(parents=True, exist_ok=True)

        keep_dirs: list[str] = []
        for d in dirs:
            if is_excluded(rel_root_posix / d) is True:
                continue
            if (root_path / d).is_symlink() is True:
                os.symlink(os.readlink(root_path / d), dst / rel_root / d)
                continue
            keep_dirs.append(d)
        dirs[:] = keep_dirs

        for name in files:
            if is_excluded(rel_root_posix / name) is True:
                continue
            src_path: pathlib.Path = root_path / name
            dest_path: pathlib.Path = dst / rel_root / name
            if src_path.is_symlink() is True:
                os.symlink(os.readlink(src_path), dest_path)
            else:
                shutil.copy2(src_path, dest_path)
            files_copied += 1

    return files_copied


def scan_all(directory: pathlib.Path) -> list[str]:
    """List every regular file under a directory.

    :param directory: Root directory (never listed itself).
    :returns: Sorted POSIX paths relative to ``directory``.
    :raises OSError: If the directory is missing or unreadable.
    """

    if directory.is_dir() is False:
        raise FileNotFoundError(f"Not a directory: {directory}")

    def raise_error(err: OSError) -> None:
        raise err

    paths: list[str] = []
    for root_str, _dirs, files in os.walk(directory, onerror=raise_error):
        root_path: pathlib.Path = pathlib.Path(root_str)
        for name in files:
            p: pathlib.Path = root_path / name
            if p.is_file() is False:
                continue
            paths.append(p.relative_to(directory).as_posix())

    paths.sort()
    return paths


def fixed_epoch(date_time: tuple[int, int, int, int, int, int]) -> float:
    """Convert a local ``(Y, M, D, h, m, s)`` tuple into a POSIX timestamp."""

    return time.mktime((*date_time, 0, 0, -1))


def normalize_timestamps(root: pathlib.Path, timestamp: float) -> int:
    """Set atime/mtime of ``root`` and everything below it to one value.

    Symlinks are not followed.

    :param root: Directory to normalize.
    :param timestamp: POSIX timestamp to apply.
    :returns: Number of entries touched.
    """

    touched: int = 0
    times: tuple[float, float] = (timestamp, timestamp)
    nofollow_ok: bool = os.utime in os.supports_follow_symlinks

    def raise_error(err: OSError) -> None:
        raise err

    # Bottom-up so directory mtimes are not bumped after being set.
    for root_str, dirs, files in os.walk(root, topdown=False, onerror=raise_error):
        root_path: pathlib.Path = pathlib.Path(root_str)
        for name in files + dirs:
            p: pathlib.Path = root_path / name
            if p.is_symlink() is True:
                if nofollow_ok is True:
                    os.utime(p, times, follow_symlinks=False)
                    touched += 1
                continue
            os.utime(p, times)
            touched += 1

    os.utime(root, times)
    return touched + 1

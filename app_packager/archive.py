"""Archive packaging and file selection."""

import enum
import logging
import pathlib
import posixpath
import zipfile

from app_packager.config import DEFINITION_FILENAME, EXTENSIONS, MANIFEST_FILENAME
from app_packager.files import ensure_dir, scan_all
from app_packager.resolver import DependencyResolver


class InclusionPolicy(enum.Enum):
    """How the archived file set is chosen."""

    SMART_DETECTION = "smart"
    INCLUDE_ALL = "all"


ALWAYS_INCLUDED_SUFFIXES: tuple[str, ...] = (MANIFEST_FILENAME, DEFINITION_FILENAME)


def is_always_included(path: str) -> bool:
    """Return whether a file is archived even if nothing imports it.

    :param path: Relative POSIX path.
    :returns: ``True`` for package manifests and app definitions.
    """

    return path.endswith(ALWAYS_INCLUDED_SUFFIXES) is True


def select_paths(
    base_dir: pathlib.Path,
    entry: pathlib.Path,
    policy: InclusionPolicy,
    *,
    extensions: tuple[str, ...] = EXTENSIONS,
    logger: logging.Logger | None = None,
) -> list[str]:
    """Decide which files under ``base_dir`` go into the archive.

    :param base_dir: Project root (paths are relative to it).
    :param entry: Entry module used for dependency detection.
    :param policy: Inclusion policy.
    :param extensions: Extensions tried by the resolver.
    :param logger: Optional logger.
    :returns: Sorted, deduplicated relative POSIX paths.
    """

    if logger is None:
        logger = logging.getLogger("app_packager")

    all_paths: list[str] = scan_all(base_dir)
    if policy is InclusionPolicy.INCLUDE_ALL:
        logger.info(f"app-packager: dependency detection disabled; including {len(all_paths)} files")
        return all_paths

    resolver: DependencyResolver = DependencyResolver(base_dir, extensions=extensions, logger=logger)
    smart_paths: list[str] = resolver.resolve(entry)
    forced: list[str] = [p for p in all_paths if is_always_included(p) is True]

    final: list[str] = sorted(set(smart_paths).union(forced))
    logger.info(
        f"app-packager: detected {len(smart_paths)} dependency files "
        f"(+{len(final) - len(smart_paths)} always included, {len(all_paths) - len(final)} skipped)"
    )
    return final


def pack(
    base_dir: pathlib.Path,
    paths: list[str],
    output_path: pathlib.Path,
    *,
    compresslevel: int = 6,
) -> None:
    """Write ``paths`` (relative to ``base_dir``) into a zip at ``output_path``.

    Entries keep their relative directory; files at the root are stored without
    a prefix. Entry timestamps come from the files, so output bytes are stable
    once timestamps are normalized. An existing archive is replaced.

    :param base_dir: Directory the paths are relative to.
    :param paths: Relative POSIX paths, in archive order.
    :param output_path: Archive to write.
    :param compresslevel: Deflate compression level.
    """

    ensure_dir(output_path.parent)
    tmp_path: pathlib.Path = output_path.with_name(output_path.name + ".tmp")
    try:
        with zipfile.ZipFile(
            tmp_path,
            "w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=compresslevel,
        ) as zf:
            for rel in paths:
                dirname: str = posixpath.dirname(rel)
                name: str = posixpath.basename(rel)
                arcname: str = name if dirname in ("", ".") else f"{dirname}/{name}"
                zf.write(base_dir / rel, arcname=arcname)
        tmp_path.replace(output_path)
    finally:
        tmp_path.unlink(missing_ok=True)

"""Build orchestrator.

A build runs these stages in order, inside a fresh temporary working directory:

- copy the project into the working directory,
- install production dependencies,
- inject the platform bootstrap module,
- validate the app through the bootstrap handler,
- write the app definition,
- normalize timestamps so the archive is reproducible,
- zip the selected files to the target path.

The working directory is removed when the build ends, whether it succeeded or
not, before any error reaches the caller.
"""

import json
import logging
import pathlib
import tempfile
import time
from collections.abc import Callable
from typing import Any

from app_packager.archive import InclusionPolicy, pack, select_paths
from app_packager.bootstrap import BootstrapInvoker, NodeBootstrapInvoker, cli_event
from app_packager.config import BUILD_PATH, FIXED_TIMESTAMP, BuildConfig
from app_packager.errors import BootstrapError, InstallError, PackagerError, ValidationError
from app_packager.files import copy_dir, fixed_epoch, normalize_timestamps, read_file, write_file
from app_packager.runner import CommandResult, run_command


def resolve_zip_path(zip_path: pathlib.Path | str | None, project_dir: pathlib.Path) -> pathlib.Path:
    """Resolve the archive location; relative paths are relative to the project.

    :param zip_path: Requested archive path (``None`` uses the default).
    :param project_dir: Project root.
    :returns: Absolute archive path.
    """

    path: pathlib.Path = pathlib.Path(BUILD_PATH if zip_path is None else zip_path)
    if path.is_absolute() is False:
        path = project_dir / path
    return path.absolute()


def _stage_excludes(project_dir: pathlib.Path, *paths: pathlib.Path) -> set[str]:
    """Relative paths of build outputs that live inside the project (old archive, work dir)."""

    project_resolved: pathlib.Path = project_dir.resolve()
    excludes: set[str] = set()
    for p in paths:
        resolved: pathlib.Path = p.resolve()
        if resolved != project_resolved and resolved.is_relative_to(project_resolved) is True:
            excludes.add(resolved.relative_to(project_resolved).as_posix())
    return excludes


def build(
    zip_path: pathlib.Path | str | None = None,
    project_dir: pathlib.Path | str | None = None,
    *,
    config: BuildConfig | None = None,
    runner: Callable[..., CommandResult] = run_command,
    invoker: BootstrapInvoker | None = None,
    logger: logging.Logger | None = None,
) -> pathlib.Path:
    """Build a deployable archive for a project.

    :param zip_path: Archive path (default ``build/build.zip`` inside the project).
    :param project_dir: Project root (default: current directory).
    :param config: Build configuration (defaults to :class:`BuildConfig`).
    :param runner: Command runner used for dependency installation.
    :param invoker: Bootstrap invoker (defaults to :class:`NodeBootstrapInvoker`).
    :param logger: Optional logger for progress output.
    :returns: Absolute path of the written archive.
    :raises InstallError: If dependency installation fails.
    :raises ValidationError: If the app reports validation errors.
    :raises BootstrapError: If the bootstrap handler cannot be invoked.
    :raises ResolutionError: If dependency detection fails.
    """

    if logger is None:
        logger = logging.getLogger("app_packager")
    if config is None:
        config = BuildConfig()

    project: pathlib.Path = pathlib.Path.cwd() if project_dir is None else pathlib.Path(project_dir)
    if project.is_dir() is False:
        raise PackagerError(f"Project directory does not exist: {project}")
    target: pathlib.Path = resolve_zip_path(zip_path, project)

    if invoker is None:
        invoker = NodeBootstrapInvoker(
            wrapper_filename=config.wrapper_filename,
            node_executable=config.node_executable,
            runner=runner,
            logger=logger,
        )

    policy: InclusionPolicy = (
        InclusionPolicy.INCLUDE_ALL if config.include_all is True else InclusionPolicy.SMART_DETECTION
    )
    t_total0: float = time.perf_counter()
    logger.info(f"app-packager: project={project}")
    logger.info(f"app-packager: output={target}")
    logger.info(f"app-packager: inclusion={policy.value}")

    with tempfile.TemporaryDirectory(prefix="app_packager_build_", dir=config.temp_root) as td:
        work_dir: pathlib.Path = pathlib.Path(td)
        if logger.isEnabledFor(logging.DEBUG) is True:
            logger.debug(f"app-packager: work_dir={work_dir}")

        t0: float = time.perf_counter()
        logger.info("app-packager: copying project to temp directory")
        copied: int = copy_dir(project, work_dir, exclude_relpaths=_stage_excludes(project, target, work_dir))
        logger.info(f"app-packager: copied {copied} files in {time.perf_counter() - t0:.2f}s")

        t0 = time.perf_counter()
        logger.info(f"app-packager: installing project dependencies ({' '.join(config.install_command)})")
        runner(list(config.install_command), cwd=work_dir, logger=logger, error_type=InstallError)
        logger.info(f"app-packager: dependencies installed in {time.perf_counter() - t0:.2f}s")

        logger.info("app-packager: applying entry point file")
        wrapper: bytes = read_file(work_dir / config.wrapper_source_relpath)
        write_file(work_dir / config.wrapper_filename, wrapper)

        t0 = time.perf_counter()
        logger.info("app-packager: validating project")
        errors: list[str] = _validation_errors(invoker.invoke(work_dir, cli_event("validate")))
        if len(errors) > 0:
            raise ValidationError(errors)
        logger.info(f"app-packager: validation passed in {time.perf_counter() - t0:.2f}s")

        logger.info(f"app-packager: building app {config.definition_filename}")
        definition: Any = _results(invoker.invoke(work_dir, cli_event("definition")), command="definition")
        write_file(work_dir / config.definition_filename, json.dumps(definition, indent=2))

        touched: int = normalize_timestamps(work_dir, fixed_epoch(FIXED_TIMESTAMP))
        if logger.isEnabledFor(logging.DEBUG) is True:
            logger.debug(f"app-packager: normalized timestamps of {touched} entries")

        t0 = time.perf_counter()
        logger.info("app-packager: zipping project and dependencies")
        paths: list[str] = select_paths(
            work_dir,
            work_dir / config.wrapper_filename,
            policy,
            extensions=config.extensions,
            logger=logger,
        )
        pack(work_dir, paths, target, compresslevel=config.compresslevel)
        size: int = target.stat().st_size
        logger.info(
            f"app-packager: wrote {target} ({len(paths)} files, {size / 1024:.1f} KiB) "
            f"in {time.perf_counter() - t0:.2f}s"
        )

        logger.info("app-packager: cleaning up temp directory")

    logger.info(f"app-packager: done in {time.perf_counter() - t_total0:.2f}s")
    return target


def _results(response: Any, *, command: str) -> Any:
    """Extract ``results`` from a bootstrap handler response."""

    if isinstance(response, dict) is False or "results" not in response:
        raise BootstrapError(f"Bootstrap response for {command!r} has no 'results': {response!r}")
    return response["results"]


def _validation_errors(response: Any) -> list[str]:
    results: Any = _results(response, command="validate")
    if isinstance(results, list) is False:
        raise BootstrapError(f"Validation results must be a list, got {type(results).__name__}.")
    return [r if isinstance(r, str) else json.dumps(r) for r in results]

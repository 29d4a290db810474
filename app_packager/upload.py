"""Build-then-upload coordination.

Credential storage and the upload API belong to the caller; this module only
sequences them around :func:`app_packager.builder.build`.
"""

import logging
import os
import pathlib
from collections.abc import Callable, Mapping

from app_packager.bootstrap import BootstrapInvoker
from app_packager.builder import build, resolve_zip_path
from app_packager.config import BuildConfig
from app_packager.errors import AuthError
from app_packager.runner import CommandResult, run_command


class EnvCredentials:
    """Credential check that requires an environment variable to be set.

    :param variable: Environment variable holding the deploy key.
    :param environ: Environment mapping (defaults to ``os.environ``).
    """

    def __init__(self, variable: str = "APP_PACKAGER_DEPLOY_KEY", environ: Mapping[str, str] | None = None) -> None:
        self.variable: str = variable
        self.environ: Mapping[str, str] = os.environ if environ is None else environ

    def __call__(self) -> bool:
        value: str = self.environ.get(self.variable, "").strip()
        if len(value) == 0:
            raise AuthError(f"No deploy key found; set {self.variable} and try again.")
        return True


def build_and_upload(
    zip_path: pathlib.Path | str | None = None,
    app_dir: pathlib.Path | str | None = None,
    *,
    check_credentials: Callable[[], object],
    upload: Callable[[pathlib.Path, pathlib.Path], object],
    config: BuildConfig | None = None,
    runner: Callable[..., CommandResult] = run_command,
    invoker: BootstrapInvoker | None = None,
    logger: logging.Logger | None = None,
) -> pathlib.Path:
    """Check credentials, build the archive, then hand it to ``upload``.

    :param zip_path: Archive path (default ``build/build.zip`` inside the app).
    :param app_dir: App directory (default: current directory).
    :param check_credentials: Raises :class:`AuthError` (or returns falsy) without credentials.
    :param upload: Called as ``upload(zip_path, app_dir)``.
    :param config: Build configuration.
    :param runner: Command runner passed to the build.
    :param invoker: Bootstrap invoker passed to the build.
    :param logger: Optional logger.
    :returns: The archive path.
    :raises AuthError: If credentials are missing.
    """

    if logger is None:
        logger = logging.getLogger("app_packager")

    project: pathlib.Path = pathlib.Path(".") if app_dir is None else pathlib.Path(app_dir)
    if not check_credentials():
        raise AuthError("Deploy credentials are missing or invalid.")

    archive: pathlib.Path = build(
        resolve_zip_path(zip_path, project),
        project,
        config=config,
        runner=runner,
        invoker=invoker,
        logger=logger,
    )

    logger.info(f"app-packager: uploading {archive}")
    upload(archive, project)
    logger.info("app-packager: upload complete")
    return archive

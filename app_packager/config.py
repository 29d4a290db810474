"""Build configuration.

Values are resolved in this order:

- explicit overrides (usually CLI flags),
- ``APP_PACKAGER_*`` environment variables,
- built-in defaults.
"""

from dataclasses import dataclass
import os
import pathlib
import shlex
from collections.abc import Mapping

from app_packager.errors import ConfigError


BUILD_PATH: str = "build/build.zip"
PLATFORM_PACKAGE: str = "zapier-platform-core"
WRAPPER_INCLUDE_DIR: str = "include"
WRAPPER_FILENAME: str = "zapierwrapper.js"
DEFINITION_FILENAME: str = "definition.json"
MANIFEST_FILENAME: str = "package.json"

INSTALL_COMMAND: tuple[str, ...] = ("npm", "install", "--production")
NODE_EXECUTABLE: str = "node"
EXTENSIONS: tuple[str, ...] = (".js", ".json", ".node")

# Local time; matches ``touch -t 201601010000``.
FIXED_TIMESTAMP: tuple[int, int, int, int, int, int] = (2016, 1, 1, 0, 0, 0)

ENV_INCLUDE_ALL: str = "APP_PACKAGER_INCLUDE_ALL"
ENV_NODE: str = "APP_PACKAGER_NODE"
ENV_INSTALL_COMMAND: str = "APP_PACKAGER_INSTALL_COMMAND"
ENV_TEMP_ROOT: str = "APP_PACKAGER_TEMP_ROOT"


@dataclass(frozen=True, slots=True)
class BuildConfig:
    """Settings for one build run.

    :ivar include_all: Archive every project file instead of detected dependencies.
    :ivar platform_package: npm package that ships the bootstrap module.
    :ivar wrapper_filename: File name of the injected bootstrap module.
    :ivar definition_filename: File name of the generated app definition.
    :ivar install_command: Production dependency install command.
    :ivar node_executable: Node.js executable used to invoke the bootstrap module.
    :ivar extensions: Extensions tried when resolving extensionless references.
    :ivar temp_root: Parent directory for working directories (``None`` = system temp).
    :ivar compresslevel: Deflate compression level (0-9).
    """

    include_all: bool = False
    platform_package: str = PLATFORM_PACKAGE
    wrapper_filename: str = WRAPPER_FILENAME
    definition_filename: str = DEFINITION_FILENAME
    install_command: tuple[str, ...] = INSTALL_COMMAND
    node_executable: str = NODE_EXECUTABLE
    extensions: tuple[str, ...] = EXTENSIONS
    temp_root: pathlib.Path | None = None
    compresslevel: int = 6

    @property
    def wrapper_source_relpath(self) -> str:
        """Location of the bootstrap module inside an installed project."""

        return f"node_modules/{self.platform_package}/{WRAPPER_INCLUDE_DIR}/{self.wrapper_filename}"


def resolve_build_config(
    *,
    include_all: bool | None = None,
    install_command: list[str] | None = None,
    node_executable: str | None = None,
    temp_root: pathlib.Path | None = None,
    compresslevel: int | None = None,
    environ: Mapping[str, str] | None = None,
) -> BuildConfig:
    """Resolve overrides and environment variables into a :class:`BuildConfig`.

    :param include_all: Optional explicit include-all switch.
    :param install_command: Optional explicit install command.
    :param node_executable: Optional explicit Node.js executable.
    :param temp_root: Optional parent directory for working directories.
    :param compresslevel: Optional deflate compression level.
    :param environ: Environment mapping (defaults to ``os.environ``).
    :returns: Resolved config.
    :raises ConfigError: If a value is invalid.
    """

    env: Mapping[str, str] = os.environ if environ is None else environ

    include_all_value: bool
    if include_all is not None:
        include_all_value = include_all
    else:
        raw_flag: str | None = env.get(ENV_INCLUDE_ALL)
        parsed: bool | None = _parse_env_bool(raw_flag) if raw_flag is not None else None
        if raw_flag is not None and parsed is None:
            raise ConfigError(f"Invalid {ENV_INCLUDE_ALL}={raw_flag!r}; expected a boolean.")
        include_all_value = parsed is True

    command: tuple[str, ...]
    if install_command is not None:
        command = tuple(install_command)
    elif env.get(ENV_INSTALL_COMMAND):
        command = tuple(shlex.split(env[ENV_INSTALL_COMMAND]))
    else:
        command = INSTALL_COMMAND
    if len(command) == 0:
        raise ConfigError("Install command must not be empty.")

    node: str = node_executable or env.get(ENV_NODE) or NODE_EXECUTABLE

    root: pathlib.Path | None = temp_root
    if root is None and env.get(ENV_TEMP_ROOT):
        root = pathlib.Path(env[ENV_TEMP_ROOT])
    if root is not None and root.is_dir() is False:
        raise ConfigError(f"Temp root is not a directory: {root}")

    level: int = 6 if compresslevel is None else compresslevel
    if level < 0 or level > 9:
        raise ConfigError(f"Invalid compresslevel={level}; expected 0-9.")

    return BuildConfig(
        include_all=include_all_value,
        install_command=command,
        node_executable=node,
        temp_root=root,
        compresslevel=level,
    )


def _parse_env_bool(value: str) -> bool | None:
    """Parse a boolean-ish environment value.

    :param value: Raw value.
    :returns: ``True``/``False``, or ``None`` if unrecognized.
    """

    v: str = value.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"", "0", "false", "no", "off"}:
        return False
    return None

"""Invocation of the injected bootstrap module.

The bootstrap module exports ``handler(event, context, callback)``. Supported
commands are ``validate`` (results: list of error strings, empty on success)
and ``definition`` (results: the app definition).

:class:`NodeBootstrapInvoker` calls the handler in a separate ``node`` process.
The driver script writes the callback outcome as JSON to a result file outside
the project, so anything the app prints does not interfere. Any object with a
matching ``invoke`` method can stand in for it.
"""

import json
import logging
import pathlib
import tempfile
import textwrap
from collections.abc import Callable
from typing import Any, Protocol

from app_packager.errors import BootstrapError, CommandError
from app_packager.runner import CommandResult, run_command


_DRIVER_JS: str = textwrap.dedent(
    r'''
    const fs = require('fs');
    const [wrapperPath, eventJson, resultPath] = process.argv.slice(1);
    const finish = (payload) => {
      fs.writeFileSync(resultPath, JSON.stringify(payload));
      process.exit(0);
    };
    let entry;
    try {
      entry = require(wrapperPath);
    } catch (err) {
      finish({error: String((err && err.stack) || err)});
    }
    entry.handler(JSON.parse(eventJson), {}, (err, resp) => {
      if (err) {
        finish({error: String((err && err.stack) || err)});
      } else {
        finish({response: resp === undefined ? null : resp});
      }
    });
    '''
).strip()

CLI_EVENT_FLAGS: dict[str, bool] = {
    "calledFromCli": True,
    "doNotMonkeyPatchPromises": True,
}


class BootstrapInvoker(Protocol):
    """Anything able to call the bootstrap handler of a staged project."""

    def invoke(self, work_dir: pathlib.Path, event: dict[str, Any]) -> Any:
        ...


def cli_event(command: str) -> dict[str, Any]:
    """Build a control event marked as CLI-originated.

    :param command: ``validate`` or ``definition``.
    :returns: Event mapping.
    """

    return {"command": command, **CLI_EVENT_FLAGS}


class NodeBootstrapInvoker:
    """Call the bootstrap handler through ``node -e``.

    :param wrapper_filename: Bootstrap module file name inside the project.
    :param node_executable: Node.js executable.
    :param runner: Command runner (defaults to :func:`run_command`).
    :param logger: Optional logger.
    """

    def __init__(
        self,
        *,
        wrapper_filename: str,
        node_executable: str = "node",
        runner: Callable[..., CommandResult] = run_command,
        logger: logging.Logger | None = None,
    ) -> None:
        self.wrapper_filename: str = wrapper_filename
        self.node_executable: str = node_executable
        self.runner: Callable[..., CommandResult] = runner
        self.logger: logging.Logger = logger or logging.getLogger("app_packager")

    def invoke(self, work_dir: pathlib.Path, event: dict[str, Any]) -> Any:
        """Run the handler for one event and return the callback response.

        :param work_dir: Staged project directory containing the bootstrap module.
        :param event: Control event.
        :returns: The decoded response object.
        :raises BootstrapError: If node fails or the handler reports an error.
        """

        wrapper_path: pathlib.Path = (work_dir / self.wrapper_filename).resolve()
        if wrapper_path.is_file() is False:
            raise BootstrapError(f"Bootstrap module missing: {wrapper_path}")

        with tempfile.TemporaryDirectory(prefix="app_packager_invoke_") as td:
            result_path: pathlib.Path = pathlib.Path(td) / "result.json"
            args: list[str] = [
                self.node_executable,
                "-e",
                _DRIVER_JS,
                str(wrapper_path),
                json.dumps(event),
                str(result_path),
            ]
            try:
                self.runner(args, cwd=work_dir, logger=self.logger)
            except CommandError as e:
                # The driver script is part of the argv; report only the output.
                output: str = (e.stderr or e.stdout).rstrip("\n")
                raise BootstrapError(
                    f"Bootstrap handler failed for command {event.get('command')!r} "
                    f"({self.node_executable} exit={e.returncode}):\n{output}"
                ) from e

            if result_path.is_file() is False:
                raise BootstrapError(
                    f"Bootstrap handler produced no result for command {event.get('command')!r}."
                )
            try:
                payload: Any = json.loads(result_path.read_text(encoding="utf-8"))
            except ValueError as e:
                raise BootstrapError(f"Bootstrap handler returned invalid JSON: {e}") from e

        if isinstance(payload, dict) is False:
            raise BootstrapError(f"Bootstrap handler returned an unexpected payload: {payload!r}")
        if "error" in payload:
            raise BootstrapError(
                f"Bootstrap handler reported an error for command {event.get('command')!r}:\n{payload['error']}"
            )
        return payload.get("response")

"""Exceptions raised by app-packager.

Filesystem failures are not wrapped; they surface as :class:`OSError`.
"""


class PackagerError(RuntimeError):
    """Base class for build and upload failures."""


class ConfigError(ValueError):
    """Raised when build configuration values cannot be resolved."""


class ResolutionError(PackagerError):
    """Raised when an entry file or a referenced module cannot be located."""


class CommandError(PackagerError):
    """Raised when a subprocess exits with a non-zero status.

    :ivar args_list: Command line that was executed.
    :ivar returncode: Process exit status.
    :ivar stdout: Captured standard output (verbatim).
    :ivar stderr: Captured standard error (verbatim).
    """

    def __init__(self, args_list: list[str], returncode: int, stdout: str, stderr: str) -> None:
        self.args_list: list[str] = list(args_list)
        self.returncode: int = returncode
        self.stdout: str = stdout
        self.stderr: str = stderr
        super().__init__(self._render())

    def _render(self) -> str:
        lines: list[str] = [
            f"Command failed (exit={self.returncode}): {' '.join(self.args_list)}",
        ]
        if len(self.stdout) > 0:
            lines.append("--- stdout ---")
            lines.append(self.stdout.rstrip("\n"))
        if len(self.stderr) > 0:
            lines.append("--- stderr ---")
            lines.append(self.stderr.rstrip("\n"))
        return "\n".join(lines)


class InstallError(CommandError):
    """Raised when production dependency installation fails."""


class BootstrapError(PackagerError):
    """Raised when the injected bootstrap module cannot be invoked."""


class ValidationError(PackagerError):
    """Raised when the app reports validation problems.

    :ivar errors: Each problem reported by the app, in order.
    """

    def __init__(self, errors: list[str]) -> None:
        self.errors: list[str] = list(errors)
        body: str = "\n".join(f"  - {e}" for e in self.errors)
        super().__init__(f"Validation reported {len(self.errors)} error(s):\n{body}")


class AuthError(PackagerError):
    """Raised when deploy credentials are missing or invalid."""

import json
import pathlib

import pytest

from app_packager.errors import CommandError
from app_packager.runner import CommandResult


def write_tree(root: pathlib.Path, files: dict[str, str]) -> pathlib.Path:
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


WRAPPER_JS = (
    "const zapier = require('zapier-platform-core');\n"
    "const app = require('./index');\n"
    "module.exports = { handler: zapier.createAppHandler(app) };\n"
)


class FakeNpm:
    """Stands in for ``npm install``: lays down the platform package."""

    def __init__(self, *, fail: bool = False, wrapper: bool = True) -> None:
        self.fail = fail
        self.wrapper = wrapper
        self.calls: list[tuple[list[str], pathlib.Path]] = []

    def __call__(self, args, *, cwd, logger=None, timeout=None, error_type=CommandError):
        self.calls.append((list(args), pathlib.Path(cwd)))
        if self.fail is True:
            raise error_type(list(args), 1, "added 0 packages\n", "npm ERR! code E404\nnpm ERR! 404 Not Found\n")

        core = {
            "node_modules/zapier-platform-core/package.json": json.dumps(
                {"name": "zapier-platform-core", "main": "index.js"}
            ),
            "node_modules/zapier-platform-core/index.js": "exports.createAppHandler = (app) => () => app;\n",
        }
        if self.wrapper is True:
            core["node_modules/zapier-platform-core/include/zapierwrapper.js"] = WRAPPER_JS
        write_tree(pathlib.Path(cwd), core)
        return CommandResult(args=tuple(args), returncode=0, stdout="added 1 package\n", stderr="")


class FakeInvoker:
    """Stands in for the bootstrap handler."""

    def __init__(self, *, errors: list[str] | None = None, definition: object = None) -> None:
        self.errors = errors or []
        self.definition = definition if definition is not None else {"version": "1.0.0", "triggers": {}}
        self.events: list[dict] = []
        self.work_dirs: list[pathlib.Path] = []

    def invoke(self, work_dir, event):
        self.events.append(dict(event))
        self.work_dirs.append(pathlib.Path(work_dir))
        assert (pathlib.Path(work_dir) / "zapierwrapper.js").is_file()
        if event["command"] == "validate":
            return {"results": list(self.errors)}
        return {"results": self.definition}


@pytest.fixture
def project(tmp_path: pathlib.Path) -> pathlib.Path:
    return write_tree(
        tmp_path / "project",
        {
            "index.js": (
                "const helper = require('./lib/helper');\n"
                "module.exports = { version: require('./package.json').version, helper };\n"
            ),
            "lib/helper.js": "module.exports = (x) => x + 1;\n",
            "lib/unused.js": "module.exports = 'never imported';\n",
            "README.md": "# My app\n",
            "package.json": json.dumps({"name": "my-app", "version": "1.0.0"}),
        },
    )


@pytest.fixture
def temp_root(tmp_path: pathlib.Path) -> pathlib.Path:
    root = tmp_path / "work"
    root.mkdir()
    return root

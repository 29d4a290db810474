import json
import zipfile

import pytest

from app_packager.builder import build, resolve_zip_path
from app_packager.config import BuildConfig
from app_packager.errors import BootstrapError, InstallError, PackagerError, ValidationError
from conftest import FakeInvoker, FakeNpm


def _names(zip_path):
    with zipfile.ZipFile(zip_path) as zf:
        return zf.namelist()


def test_build_archives_detected_files(project, temp_root):
    npm = FakeNpm()
    invoker = FakeInvoker(definition={"version": "1.0.0", "triggers": {"new_item": {}}})

    out = build(None, project, config=BuildConfig(temp_root=temp_root), runner=npm, invoker=invoker)

    assert out == project / "build" / "build.zip"
    assert _names(out) == [
        "definition.json",
        "index.js",
        "lib/helper.js",
        "node_modules/zapier-platform-core/index.js",
        "node_modules/zapier-platform-core/package.json",
        "package.json",
        "zapierwrapper.js",
    ]
    with zipfile.ZipFile(out) as zf:
        assert json.loads(zf.read("definition.json")) == {"version": "1.0.0", "triggers": {"new_item": {}}}
        assert zf.read("definition.json").decode().startswith('{\n  "version"')
        assert zf.getinfo("index.js").date_time == (2016, 1, 1, 0, 0, 0)

    assert list(temp_root.iterdir()) == []
    assert invoker.work_dirs[0].exists() is False


def test_build_runs_install_then_validate_then_definition(project, temp_root):
    npm = FakeNpm()
    invoker = FakeInvoker()

    build("out.zip", project, config=BuildConfig(temp_root=temp_root), runner=npm, invoker=invoker)

    assert npm.calls[0][0] == ["npm", "install", "--production"]
    assert npm.calls[0][1].parent == temp_root
    assert invoker.events == [
        {"command": "validate", "calledFromCli": True, "doNotMonkeyPatchPromises": True},
        {"command": "definition", "calledFromCli": True, "doNotMonkeyPatchPromises": True},
    ]
    assert (project / "out.zip").is_file()


def test_build_include_all(project, temp_root):
    out = build(
        None,
        project,
        config=BuildConfig(include_all=True, temp_root=temp_root),
        runner=FakeNpm(),
        invoker=FakeInvoker(),
    )

    names = _names(out)
    assert "README.md" in names
    assert "lib/unused.js" in names
    assert "node_modules/zapier-platform-core/include/zapierwrapper.js" in names
    assert "package.json" in names
    assert "definition.json" in names
    assert names == sorted(names)


def test_previous_archive_is_not_repackaged(project, temp_root):
    (project / "build").mkdir()
    (project / "build" / "build.zip").write_bytes(b"stale")

    out = build(
        None,
        project,
        config=BuildConfig(include_all=True, temp_root=temp_root),
        runner=FakeNpm(),
        invoker=FakeInvoker(),
    )

    assert "build/build.zip" not in _names(out)


def test_builds_are_reproducible(project, temp_root, tmp_path):
    config = BuildConfig(temp_root=temp_root)
    first = build(tmp_path / "first.zip", project, config=config, runner=FakeNpm(), invoker=FakeInvoker())
    second = build(tmp_path / "second.zip", project, config=config, runner=FakeNpm(), invoker=FakeInvoker())

    assert first.read_bytes() == second.read_bytes()


def test_install_failure_cleans_up_and_keeps_output(project, temp_root):
    invoker = FakeInvoker()

    with pytest.raises(InstallError) as exc_info:
        build(None, project, config=BuildConfig(temp_root=temp_root), runner=FakeNpm(fail=True), invoker=invoker)

    err = exc_info.value
    assert err.returncode == 1
    assert "npm ERR! 404 Not Found" in str(err)
    assert "added 0 packages" in str(err)
    assert err.stderr == "npm ERR! code E404\nnpm ERR! 404 Not Found\n"
    assert list(temp_root.iterdir()) == []
    assert invoker.events == []
    assert (project / "build" / "build.zip").exists() is False


def test_validation_failure_produces_no_archive(project, temp_root):
    invoker = FakeInvoker(errors=["triggers.new_item: missing key 'noun'", "authentication: bad type"])

    with pytest.raises(ValidationError) as exc_info:
        build(None, project, config=BuildConfig(temp_root=temp_root), runner=FakeNpm(), invoker=invoker)

    err = exc_info.value
    assert err.errors == ["triggers.new_item: missing key 'noun'", "authentication: bad type"]
    message = str(err)
    assert "  - triggers.new_item: missing key 'noun'" in message
    assert "  - authentication: bad type" in message
    assert [e["command"] for e in invoker.events] == ["validate"]
    assert (project / "build" / "build.zip").exists() is False
    assert list(temp_root.iterdir()) == []


class _NullResultsInvoker(FakeInvoker):
    def invoke(self, work_dir, event):
        self.events.append(dict(event))
        return {"results": None}


def test_null_validation_results_are_rejected(project, temp_root):
    invoker = _NullResultsInvoker()

    with pytest.raises(BootstrapError, match="must be a list, got NoneType"):
        build(None, project, config=BuildConfig(temp_root=temp_root), runner=FakeNpm(), invoker=invoker)

    assert [e["command"] for e in invoker.events] == ["validate"]
    assert (project / "build" / "build.zip").exists() is False
    assert list(temp_root.iterdir()) == []


def test_missing_bootstrap_module_cleans_up(project, temp_root):
    with pytest.raises(FileNotFoundError):
        build(
            None,
            project,
            config=BuildConfig(temp_root=temp_root),
            runner=FakeNpm(wrapper=False),
            invoker=FakeInvoker(),
        )

    assert list(temp_root.iterdir()) == []


def test_missing_project_directory(tmp_path):
    with pytest.raises(PackagerError, match="does not exist"):
        build(None, tmp_path / "nope", runner=FakeNpm(), invoker=FakeInvoker())


def test_resolve_zip_path(tmp_path):
    assert resolve_zip_path(None, tmp_path) == tmp_path / "build" / "build.zip"
    assert resolve_zip_path("dist/app.zip", tmp_path) == tmp_path / "dist" / "app.zip"
    assert resolve_zip_path(tmp_path / "abs.zip", tmp_path / "other") == tmp_path / "abs.zip"

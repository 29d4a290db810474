import pytest

from app_packager.config import BuildConfig
from app_packager.errors import AuthError
from app_packager.upload import EnvCredentials, build_and_upload
from conftest import FakeInvoker, FakeNpm


def test_build_then_upload(project, temp_root):
    uploads = []
    npm = FakeNpm()

    archive = build_and_upload(
        None,
        project,
        check_credentials=lambda: True,
        upload=lambda zip_path, app_dir: uploads.append((zip_path, app_dir)),
        config=BuildConfig(temp_root=temp_root),
        runner=npm,
        invoker=FakeInvoker(),
    )

    assert archive == project / "build" / "build.zip"
    assert archive.is_file()
    assert uploads == [(archive, project)]


def test_missing_credentials_stop_before_build(project):
    npm = FakeNpm()
    uploads = []

    with pytest.raises(AuthError):
        build_and_upload(
            None,
            project,
            check_credentials=EnvCredentials(environ={}),
            upload=lambda zip_path, app_dir: uploads.append(zip_path),
            runner=npm,
            invoker=FakeInvoker(),
        )

    assert npm.calls == []
    assert uploads == []
    assert (project / "build").exists() is False


def test_falsy_credential_check_is_rejected(project):
    npm = FakeNpm()

    with pytest.raises(AuthError):
        build_and_upload(
            None,
            project,
            check_credentials=lambda: False,
            upload=lambda zip_path, app_dir: None,
            runner=npm,
            invoker=FakeInvoker(),
        )
    assert npm.calls == []


def test_env_credentials():
    assert EnvCredentials(environ={"APP_PACKAGER_DEPLOY_KEY": "abc123"})() is True
    assert EnvCredentials("MY_KEY", environ={"MY_KEY": "k"})() is True
    with pytest.raises(AuthError, match="MY_KEY"):
        EnvCredentials("MY_KEY", environ={"MY_KEY": "  "})()

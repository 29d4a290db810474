import os

import pytest

from app_packager.files import (
    copy_dir,
    ensure_dir,
    fixed_epoch,
    normalize_timestamps,
    read_file,
    remove_dir,
    scan_all,
    write_file,
)
from conftest import write_tree


def test_scan_all_lists_every_file_sorted(tmp_path):
    write_tree(
        tmp_path,
        {"index.js": "", "README.md": "", "package.json": "{}"},
    )

    assert scan_all(tmp_path) == ["README.md", "index.js", "package.json"]


def test_scan_all_recurses_and_skips_directories(tmp_path):
    write_tree(tmp_path, {"b/c/d.txt": "", "a.txt": "", "b/a.txt": ""})
    (tmp_path / "empty").mkdir()

    assert scan_all(tmp_path) == ["a.txt", "b/a.txt", "b/c/d.txt"]


def test_scan_all_missing_directory_raises(tmp_path):
    with pytest.raises(OSError):
        scan_all(tmp_path / "missing")


@pytest.mark.skipif(
    os.name == "nt" or os.geteuid() == 0, reason="permission bits are not enforced here"
)
def test_scan_all_unreadable_directory_raises(tmp_path):
    write_tree(tmp_path, {"index.js": "", "locked/secret.js": ""})
    locked = tmp_path / "locked"
    locked.chmod(0)
    try:
        with pytest.raises(PermissionError):
            scan_all(tmp_path)
    finally:
        locked.chmod(0o755)


def test_copy_dir_copies_verbatim_with_excludes(tmp_path):
    src = write_tree(
        tmp_path / "src",
        {
            "index.js": "x",
            "node_modules/a/index.js": "y",
            "build/build.zip": "old",
            "build/keep.txt": "k",
        },
    )
    dst = tmp_path / "dst"

    copied = copy_dir(src, dst, exclude_relpaths={"build/build.zip"})

    assert copied == 3
    assert scan_all(dst) == ["build/keep.txt", "index.js", "node_modules/a/index.js"]
    assert (dst / "index.js").read_text() == "x"


@pytest.mark.skipif(os.name == "nt", reason="symlinks need privileges on Windows")
def test_copy_dir_preserves_symlinks(tmp_path):
    src = write_tree(tmp_path / "src", {"node_modules/pkg/bin.js": "#!/usr/bin/env node\n"})
    (src / "node_modules" / ".bin").mkdir()
    os.symlink("../pkg/bin.js", src / "node_modules" / ".bin" / "pkg")
    os.symlink("pkg", src / "node_modules" / "alias")
    dst = tmp_path / "dst"

    copy_dir(src, dst)

    assert os.readlink(dst / "node_modules" / ".bin" / "pkg") == "../pkg/bin.js"
    assert os.readlink(dst / "node_modules" / "alias") == "pkg"


def test_read_write_remove(tmp_path):
    assert ensure_dir(tmp_path / "a" / "b") == tmp_path / "a" / "b"
    assert (tmp_path / "a" / "b").is_dir()
    ensure_dir(tmp_path / "a" / "b")

    target = tmp_path / "nested" / "dir" / "file.json"
    write_file(target, "{\n  \"a\": 1\n}")

    assert read_file(target) == b'{\n  "a": 1\n}'

    remove_dir(tmp_path / "nested")
    assert (tmp_path / "nested").exists() is False
    remove_dir(tmp_path / "nested")


def test_normalize_timestamps(tmp_path):
    root = write_tree(tmp_path / "root", {"a.js": "", "lib/b.js": "", "lib/deep/c.js": ""})
    stamp = fixed_epoch((2016, 1, 1, 0, 0, 0))

    touched = normalize_timestamps(root, stamp)

    assert touched == 6
    for p in [root, root / "a.js", root / "lib", root / "lib" / "b.js", root / "lib" / "deep" / "c.js"]:
        assert p.stat().st_mtime == pytest.approx(stamp)

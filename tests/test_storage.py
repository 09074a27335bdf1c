import os

import pytest

from chaindb.errors import AccessError, NotFound
from chaindb.storage import SandboxedStorage


@pytest.fixture
def storage(store_dir):
    return SandboxedStorage(store_dir)


def test_open_file_returns_stream_and_stat(storage, store_dir):
    with storage.open_file("a.txt") as opened:
        assert opened.name == "a.txt"
        assert opened.size == len(b"hello world")
        assert opened.modified.timestamp() == pytest.approx((store_dir / "a.txt").stat().st_mtime)
        opened.stream.seek(6)
        assert opened.stream.read() == b"world"
    assert opened.stream.closed


def test_open_nested_file(storage):
    with storage.open_file("docs/report.pdf") as opened:
        assert opened.stream.read(4) == b"%PDF"


@pytest.mark.parametrize(
    "name",
    ["../secret.txt", "../../etc/passwd", "docs/../../secret.txt", "..\\secret.txt"],
)
def test_traversal_cannot_escape_root(storage, name):
    with pytest.raises((NotFound, AccessError)):
        storage.open_file(name)


def test_absolute_path_is_rooted(storage, store_dir):
    with storage.open_file("/a.txt") as opened:
        assert opened.stream.read() == b"hello world"
    with pytest.raises(NotFound):
        storage.open_file(str(store_dir.parent / "secret.txt"))


def test_dotdot_is_clamped_to_root(storage):
    # Like a base-path filesystem, "/.." is the root itself.
    with storage.open_file("../../a.txt") as opened:
        assert opened.stream.read() == b"hello world"


def test_symlink_outside_root_is_refused(storage, store_dir):
    link = store_dir / "escape.txt"
    try:
        os.symlink(store_dir.parent / "secret.txt", link)
    except (OSError, NotImplementedError):
        pytest.skip("symlinks not supported")
    with pytest.raises(NotFound):
        storage.open_file("escape.txt")


def test_missing_file(storage):
    with pytest.raises(NotFound):
        storage.open_file("nope.txt")


@pytest.mark.parametrize("name", ["docs", "", "/", "."])
def test_directories_are_not_files(storage, name):
    with pytest.raises(NotFound):
        storage.open_file(name)


@pytest.mark.skipif(os.name != "posix" or os.geteuid() == 0, reason="needs a non-root posix user")
def test_permission_error_is_access_error(storage, store_dir):
    target = store_dir / "locked.txt"
    target.write_text("x")
    target.chmod(0)
    try:
        with pytest.raises(AccessError):
            storage.open_file("locked.txt")
    finally:
        target.chmod(0o644)


def test_list_and_exists(storage):
    assert storage.list_files() == ["a.txt", "docs/report.pdf"]
    assert storage.exists("docs/report.pdf")
    assert not storage.exists("docs")
    assert not storage.exists("../secret.txt")


@pytest.mark.skipif(os.sep == "\\", reason="backslash is a separator on Windows")
def test_backslash_is_part_of_posix_name(storage, store_dir):
    (store_dir / "q1\\q2.txt").write_bytes(b"quarters")
    with storage.open_file("q1\\q2.txt") as opened:
        assert opened.name == "q1\\q2.txt"
        assert opened.stream.read() == b"quarters"

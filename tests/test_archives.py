"""Tests for files/archives.py module."""

import io
import os
import stat
import tarfile
import zipfile
from pathlib import Path

import pytest

from imagepack.errors import ArchiveError
from imagepack.files.archives import (
    TARFILE_MARKER,
    archive_format,
    create_embedded_tar_script,
    create_zip_archive,
    extract_archive,
    process_jar_contents,
)

posix_only = pytest.mark.skipif(os.name != "posix", reason="requires POSIX modes")


def make_tar(source: Path, archive: Path, compression: str) -> Path:
    """Tar the entries of ``source`` at the archive's top level."""
    mode = f"w:{compression}" if compression else "w"
    with tarfile.open(archive, mode) as tar:
        for child in sorted(source.iterdir()):
            tar.add(child, arcname=child.name)
    return archive


@pytest.fixture
def source(tmp_path: Path) -> Path:
    root = tmp_path / "source"
    (root / "bin").mkdir(parents=True)
    tool = root / "bin" / "tool"
    tool.write_text("#!/bin/sh\n")
    tool.chmod(0o755)
    (root / "readme.txt").write_text("hello")
    return root


class TestArchiveFormat:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("app.zip", "zip"),
            ("lib.JAR", "zip"),
            ("jdk.tar.gz", "tar"),
            ("jdk.tgz", "tar"),
            ("jdk.tar.xz", "tar"),
            ("jdk.tar.bz2", "tar"),
            ("app.dmg", None),
        ],
    )
    def test_formats(self, name, expected):
        assert archive_format(Path(name)) == expected


class TestExtractArchive:
    """Tests for extract_archive."""

    @posix_only
    def test_zip_preserves_modes(self, tmp_path: Path, source: Path):
        archive = create_zip_archive(source, tmp_path / "app.zip")
        dest = extract_archive(archive, tmp_path / "out")
        assert (dest / "readme.txt").read_text() == "hello"
        assert stat.S_IMODE((dest / "bin" / "tool").stat().st_mode) == 0o755

    @posix_only
    def test_zip_symlink(self, tmp_path: Path, source: Path):
        (source / "link").symlink_to("bin/tool")
        archive = create_zip_archive(source, tmp_path / "app.zip")
        dest = extract_archive(archive, tmp_path / "out")
        assert (dest / "link").is_symlink()
        assert os.readlink(dest / "link") == "bin/tool"

    @pytest.mark.parametrize("compression", ["", "gz", "bz2", "xz"])
    def test_tar_variants(self, tmp_path: Path, source: Path, compression):
        suffix = {"": ".tar", "gz": ".tar.gz", "bz2": ".tar.bz2", "xz": ".tar.xz"}
        archive = make_tar(source, tmp_path / f"app{suffix[compression]}", compression)
        dest = extract_archive(archive, tmp_path / "out")
        assert (dest / "bin" / "tool").is_file()
        assert (dest / "readme.txt").read_text() == "hello"

    def test_unsupported_format(self, tmp_path: Path):
        archive = tmp_path / "app.rar"
        archive.write_bytes(b"x")
        with pytest.raises(ArchiveError) as exc_info:
            extract_archive(archive, tmp_path / "out")
        assert exc_info.value.code == "unsupported_format"

    def test_corrupt_zip(self, tmp_path: Path):
        archive = tmp_path / "bad.zip"
        archive.write_bytes(b"not a zip")
        with pytest.raises(ArchiveError):
            extract_archive(archive, tmp_path / "out")

    def test_zip_path_traversal_rejected(self, tmp_path: Path):
        archive = tmp_path / "evil.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("../evil.txt", "x")
        with pytest.raises(ArchiveError) as exc_info:
            extract_archive(archive, tmp_path / "out")
        assert exc_info.value.code == "path_traversal"
        assert not (tmp_path / "evil.txt").exists()

    def test_zip_escaping_symlink_rejected(self, tmp_path: Path):
        archive = tmp_path / "evil.zip"
        info = zipfile.ZipInfo("link")
        info.external_attr = (stat.S_IFLNK | 0o777) << 16
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr(info, "../../outside")
        with pytest.raises(ArchiveError) as exc_info:
            extract_archive(archive, tmp_path / "out")
        assert exc_info.value.code == "path_traversal"

    def test_tar_path_traversal_rejected(self, tmp_path: Path):
        archive = tmp_path / "evil.tar"
        with tarfile.open(archive, "w") as tar:
            data = b"x"
            info = tarfile.TarInfo("../evil.txt")
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
        with pytest.raises(ArchiveError):
            extract_archive(archive, tmp_path / "out")
        assert not (tmp_path / "evil.txt").exists()


class TestEmbeddedTarScript:
    """Tests for create_embedded_tar_script."""

    def _payload(self, script: Path) -> tarfile.TarFile:
        data = script.read_bytes()
        marker = f"\n{TARFILE_MARKER}\n".encode()
        offset = data.index(marker) + len(marker)
        return tarfile.open(fileobj=io.BytesIO(data[offset:]), mode="r:gz")

    def test_script_then_payload(self, tmp_path: Path, source: Path):
        script = f"#!/bin/sh\necho install\nexit 0\n{TARFILE_MARKER}\n"
        dest = create_embedded_tar_script(script, source, tmp_path / "setup.sh")

        assert dest.read_bytes().startswith(b"#!/bin/sh\necho install\n")
        with self._payload(dest) as tar:
            assert sorted(tar.getnames()) == ["bin", "bin/tool", "readme.txt"]

    def test_marker_appended(self, tmp_path: Path, source: Path):
        """Scripts without the marker line get one."""
        dest = create_embedded_tar_script(
            "#!/bin/sh\nexit 0", source, tmp_path / "setup.sh"
        )
        with self._payload(dest) as tar:
            assert "readme.txt" in tar.getnames()


class TestProcessJarContents:
    """Tests for process_jar_contents."""

    @pytest.fixture
    def jar(self, tmp_path: Path) -> Path:
        path = tmp_path / "native.jar"
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("META-INF/MANIFEST.MF", "Manifest-Version: 1.0\n")
            zf.writestr("darwin/libnative.dylib", b"unsigned")
            zf.writestr("com/example/Main.class", b"class")
        return path

    def test_rewrites_matching_entries(self, tmp_path: Path, jar: Path):
        seen = []

        def processor(file: Path, entry: str) -> bool:
            seen.append(entry)
            file.write_bytes(b"signed")
            return True

        count = process_jar_contents(jar, "**/*.{dylib,jnilib}", processor, tmp_path)

        assert count == 1
        assert seen == ["darwin/libnative.dylib"]
        with zipfile.ZipFile(jar) as zf:
            assert zf.read("darwin/libnative.dylib") == b"signed"
            assert zf.read("com/example/Main.class") == b"class"
            assert zf.namelist()[0] == "META-INF/MANIFEST.MF"

    def test_declined_entries_untouched(self, jar: Path):
        before = jar.read_bytes()
        count = process_jar_contents(jar, "**/*.dylib", lambda f, e: False)
        assert count == 0
        assert jar.read_bytes() == before

    def test_no_matches(self, jar: Path):
        assert process_jar_contents(jar, "**/*.so", lambda f, e: True) == 0

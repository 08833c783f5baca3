"""End-to-end tests for a sync run."""

import json
import os
import shutil
from unittest.mock import patch

import pytest
import zstandard

from constants import Constants
from repodata.cache import destination_filename
from repodata.config import ChannelConfig, RepoConfig
from repodata.errors import ConfigurationError, DownloadError, RefreshError
from repodata.pipeline import RunIndexes, channel_allowlist, run_sync
from repodata.nameset import NameSet

TESTDATA = os.path.join(os.path.dirname(__file__), "testdata")


def _read_lines(path):
    with open(path, "r", encoding="utf-8") as handle:
        return handle.read().splitlines()


@pytest.fixture
def mirror(tmp_path):
    """Raw cache pre-populated from testdata, with refresh disabled by age."""
    original = tmp_path / "original"
    filtered = tmp_path / "filtered"
    for subdir in ("noarch", "linux-64"):
        dest = destination_filename(str(original), "ch", subdir)
        os.makedirs(os.path.dirname(dest))
        shutil.copy(os.path.join(TESTDATA, subdir, "repodata.json"), dest)

    def _config(**channel_kwargs):
        channel_kwargs.setdefault("subdirs", ["noarch", "linux-64"])
        return RepoConfig(
            conda_host="https://host",
            max_age_minutes=100000,
            original_repodata_dir=str(original),
            filtered_repodata_dir=str(filtered),
            channels={"ch": ChannelConfig(**channel_kwargs)},
        )

    _config.tmp_path = tmp_path
    _config.filtered = str(filtered)
    return _config


def _allowlist(tmp_path, *names):
    path = tmp_path / "allow.txt"
    path.write_text("".join(f"{name}\n" for name in names), encoding="utf-8")
    return str(path)


def test_run_without_allowlist(mirror):
    config = mirror()
    with patch("common.http_client.requests.get") as mock_get:
        report = run_sync(config)
    mock_get.assert_not_called()

    assert report.ok
    assert report.indexes_published
    assert _read_lines(os.path.join(mirror.filtered, Constants.FILENAMES_INDEX)) == [
        "ch/linux-64/d-2023.1.1-0.conda",
        "ch/linux-64/e-12.34.56-78.conda",
        "ch/noarch/a-0.1.0-0.tar.bz2",
        "ch/noarch/a-0.2.0-abc_0.tar.bz2",
        "ch/noarch/b-1-10.tar.bz2",
        "ch/noarch/c-1.2.3-aaa_0.conda",
    ]
    assert _read_lines(os.path.join(mirror.filtered, Constants.PACKAGENAMES_INDEX)) == [
        "a", "b", "c", "d", "e",
    ]


def test_published_catalog_format(mirror):
    config = mirror()
    run_sync(config)
    path = destination_filename(config.filtered_repodata_dir, "ch", "noarch")
    with open(path, "rb") as handle:
        raw = handle.read()
    assert raw.startswith(b'{\n "info": {\n  "subdir": "noarch"\n },\n "packages": {')
    assert raw.endswith(b"}\n")
    data = json.loads(raw)
    assert "x-1.0-0.tar.bz2" not in data["packages"]
    assert data["packages"]["a-0.1.0-0.tar.bz2"]["license"] == "MIT"

    with open(path + Constants.ZSTD_SUFFIX, "rb") as handle:
        compressed = handle.read()
    assert zstandard.ZstdDecompressor().decompressobj().decompress(compressed) == raw


def test_compress_disabled(mirror):
    config = mirror()
    config.compress = False
    run_sync(config)
    path = destination_filename(config.filtered_repodata_dir, "ch", "noarch")
    assert os.path.isfile(path)
    assert not os.path.exists(path + Constants.ZSTD_SUFFIX)


def test_allowlist_without_recursion(mirror):
    config = mirror(allowlist_file=_allowlist(mirror.tmp_path, "a"))
    report = run_sync(config)
    assert report.indexes.package_names == {"a"}
    with open(destination_filename(config.filtered_repodata_dir, "ch", "linux-64"), "rb") as handle:
        assert json.load(handle)["packages.conda"] == {}


def test_allowlist_with_recursion(mirror):
    config = mirror(allowlist_file=_allowlist(mirror.tmp_path, "a"), recurse_dependencies=True)
    report = run_sync(config)
    assert report.indexes.package_names == {"a", "b", "c", "d"}
    assert "ch/linux-64/d-2023.1.1-0.conda" in report.indexes.filenames
    assert "ch/linux-64/e-12.34.56-78.conda" not in report.indexes.filenames


def test_recursion_without_allowlist_admits_everything(mirror, caplog):
    config = mirror(recurse_dependencies=True)
    assert channel_allowlist(config, "ch", config.channels["ch"]) is None
    assert "no effect without an allowlist" in caplog.text


def test_allowlists_do_not_leak_between_channels(mirror):
    config = mirror(allowlist_file=_allowlist(mirror.tmp_path, "a"))
    shutil.copytree(
        os.path.join(config.original_repodata_dir, "ch"),
        os.path.join(config.original_repodata_dir, "other"),
    )
    config.channels["other"] = ChannelConfig(subdirs=["noarch", "linux-64"])
    report = run_sync(config)
    assert "ch/noarch/b-1-10.tar.bz2" not in report.indexes.filenames
    assert "other/noarch/b-1-10.tar.bz2" in report.indexes.filenames
    assert "other/linux-64/e-12.34.56-78.conda" in report.indexes.filenames


def test_missing_allowlist_file_fails_channel(mirror):
    config = mirror(allowlist_file=str(mirror.tmp_path / "missing.txt"))
    report = run_sync(config)
    assert not report.ok
    assert isinstance(report.filter_errors[0], ConfigurationError)
    assert not report.indexes_published


def test_refresh_failure_still_filters_cached_copy(mirror):
    config = mirror()
    with patch(
        "repodata.pipeline.update_from_config",
        side_effect=RefreshError(
            [DownloadError("503 Service Unavailable https://host/ch/noarch/repodata.json")]
        ),
    ):
        report = run_sync(config)
    assert len(report.refresh_errors) == 1
    assert not report.filter_errors
    assert report.indexes_published
    assert not report.ok


def test_broken_subdir_keeps_previous_indexes(mirror):
    config = mirror()
    run_sync(config)
    index_path = os.path.join(config.filtered_repodata_dir, Constants.FILENAMES_INDEX)
    before = _read_lines(index_path)

    with open(destination_filename(config.original_repodata_dir, "ch", "linux-64"), "wb") as handle:
        handle.write(b"{not json")
    report = run_sync(config)

    assert len(report.filter_errors) == 1
    assert not report.indexes_published
    assert _read_lines(index_path) == before
    noarch = destination_filename(config.filtered_repodata_dir, "ch", "noarch")
    assert os.path.isfile(noarch)


def test_force_downloads_every_subdir(mirror):
    config = mirror()
    with patch("repodata.pipeline.update_from_config") as mock_update:
        run_sync(config, force=True)
    mock_update.assert_called_once_with(config, True)


def test_run_indexes_publish(tmp_path):
    indexes = RunIndexes(
        filenames=NameSet(["ch/noarch/b-1-0.conda", "ch/noarch/a-1-0.conda"]),
        package_names=NameSet(["b", "a"]),
    )
    indexes.publish(str(tmp_path))
    assert _read_lines(str(tmp_path / "filenames.txt")) == [
        "ch/noarch/a-1-0.conda",
        "ch/noarch/b-1-0.conda",
    ]
    assert _read_lines(str(tmp_path / "packagenames.txt")) == ["a", "b"]

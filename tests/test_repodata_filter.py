"""Tests for repodata filtering and allowlist parsing."""

import logging
import os

import pytest

from repodata.errors import ConfigurationError, RepodataIOError
from repodata.filter import (
    filename_is_valid,
    filter_repodata,
    package_is_allowed,
    parse_allowlist,
    parse_list_from_file,
    parse_repodata,
)
from repodata.models import Repodata, RepodataInfo, RepodataRecord, load_repodata
from repodata.nameset import NameSet

TESTDATA = os.path.join(os.path.dirname(__file__), "testdata")


def _record(name="a", version="1.0", build="0", subdir="noarch"):
    return RepodataRecord(name=name, version=version, build=build, subdir=subdir)


def _repodata(subdir="noarch"):
    return Repodata(info=RepodataInfo(subdir=subdir))


@pytest.mark.parametrize(
    "filename,extension,record_subdir,expected",
    [
        ("a-1.0-0.tar.bz2", ".tar.bz2", "noarch", True),
        ("a-1.0-0.conda", ".conda", "noarch", True),
        ("a-1.0-0.conda", ".tar.bz2", "noarch", False),
        ("a-1.0-0.tar.bz2", ".conda", "noarch", False),
        ("a-1.0-1.tar.bz2", ".tar.bz2", "noarch", False),
        ("a-1.1-0.tar.bz2", ".tar.bz2", "noarch", False),
        ("b-1.0-0.tar.bz2", ".tar.bz2", "noarch", False),
        ("a-1.0-0.tar.bz2", ".tar.bz2", "linux-64", False),
    ],
)
def test_filename_is_valid(filename, extension, record_subdir, expected):
    record = _record(subdir=record_subdir)
    assert filename_is_valid(filename, extension, _repodata(), record) is expected


def test_filename_mismatch_is_logged(caplog):
    with caplog.at_level(logging.WARNING):
        assert not filename_is_valid("a-2-0.conda", ".conda", _repodata(), _record())
    assert "Filename does not match metadata" in caplog.text


def test_package_is_allowed():
    assert package_is_allowed("anything", None)
    assert package_is_allowed("a", NameSet(["a"]))
    assert not package_is_allowed("b", NameSet(["a"]))
    assert not package_is_allowed("a", NameSet())


class TestFilterRepodata:
    def setup_method(self):
        self.repodata = load_repodata(os.path.join(TESTDATA, "noarch", "repodata.json"))

    def test_no_allowlist_keeps_every_valid_record(self):
        result = filter_repodata(self.repodata, None, "ch")
        assert sorted(result.repodata.packages) == [
            "a-0.1.0-0.tar.bz2",
            "a-0.2.0-abc_0.tar.bz2",
            "b-1-10.tar.bz2",
        ]
        assert list(result.repodata.packages_conda) == ["c-1.2.3-aaa_0.conda"]
        assert result.package_names == {"a", "b", "c"}
        assert result.filenames == {
            "ch/noarch/a-0.1.0-0.tar.bz2",
            "ch/noarch/a-0.2.0-abc_0.tar.bz2",
            "ch/noarch/b-1-10.tar.bz2",
            "ch/noarch/c-1.2.3-aaa_0.conda",
        }

    def test_allowlist_restricts_by_name(self):
        result = filter_repodata(self.repodata, NameSet(["a", "c"]), "ch")
        assert sorted(result.repodata.packages) == ["a-0.1.0-0.tar.bz2", "a-0.2.0-abc_0.tar.bz2"]
        assert list(result.repodata.packages_conda) == ["c-1.2.3-aaa_0.conda"]
        assert result.package_names == {"a", "c"}
        assert len(result.filenames) == 3

    def test_empty_allowlist_admits_nothing(self):
        result = filter_repodata(self.repodata, NameSet(), "ch")
        assert len(result.repodata) == 0
        assert len(result.filenames) == 0
        assert result.repodata.subdir == "noarch"

    def test_input_is_not_modified(self):
        before = len(self.repodata)
        filter_repodata(self.repodata, NameSet(["a"]), "ch")
        assert len(self.repodata) == before
        assert "x-1.0-0.tar.bz2" in self.repodata.packages

    def test_filtering_is_idempotent(self):
        once = filter_repodata(self.repodata, NameSet(["a", "b"]), "ch")
        twice = filter_repodata(once.repodata, NameSet(["a", "b"]), "ch")
        assert twice.repodata.to_dict() == once.repodata.to_dict()
        assert twice.filenames == once.filenames

    def test_records_keep_unknown_fields(self):
        result = filter_repodata(self.repodata, None, "ch")
        record = result.repodata.packages["a-0.1.0-0.tar.bz2"]
        assert record.extra["license"] == "MIT"

    def test_subdir_mismatch_is_dropped(self):
        repodata = load_repodata(os.path.join(TESTDATA, "linux-64", "repodata.json"))
        result = filter_repodata(repodata, None, "ch")
        assert sorted(result.repodata.packages_conda) == [
            "d-2023.1.1-0.conda",
            "e-12.34.56-78.conda",
        ]
        assert "ch/linux-64/f-1-0.conda" not in result.filenames


class TestAllowlistParsing:
    def test_parse_allowlist_skips_comments_and_blanks(self):
        lines = ["# header\n", "numpy\n", "\n", "  scipy  \n", "numpy\n"]
        assert parse_allowlist(lines) == {"numpy", "scipy"}

    def test_parse_list_from_file(self):
        names = parse_list_from_file(os.path.join(TESTDATA, "allowed_packages.txt"))
        assert names == {"foo", "bar", "baz"}

    def test_missing_file_is_configuration_error(self, tmp_path):
        with pytest.raises(ConfigurationError):
            parse_list_from_file(str(tmp_path / "nope.txt"))


class TestParseRepodata:
    def test_parse_testdata(self):
        result = parse_repodata("conda-forge", os.path.join(TESTDATA, "noarch", "repodata.json"), NameSet(["b"]))
        assert result.filenames == {"conda-forge/noarch/b-1-10.tar.bz2"}
        assert result.package_names == {"b"}

    def test_missing_file(self, tmp_path):
        with pytest.raises(RepodataIOError):
            parse_repodata("ch", str(tmp_path / "repodata.json"), None)

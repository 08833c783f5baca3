"""Tests for dependency-name parsing and closure resolution."""

import os

import pytest

from repodata.models import Repodata, RepodataInfo, RepodataRecord, load_repodata
from repodata.nameset import NameSet
from repodata.resolver import (
    build_dependency_graph,
    parse_dependency_name,
    resolve_closure,
    update_dependency_graph,
)

TESTDATA = os.path.join(os.path.dirname(__file__), "testdata")


@pytest.mark.parametrize(
    "dependency,expected",
    [
        ("python", "python"),
        ("python >=3.10,<3.11.0a0", "python"),
        ("libgcc-ng>=12", "libgcc-ng"),
        ("openssl<4", "openssl"),
        ("numpy==1.26", "numpy"),
        ("zlib 1.2.* *_0", "zlib"),
        ("_openmp_mutex >=4.5", "_openmp_mutex"),
        ("", ""),
    ],
)
def test_parse_dependency_name(dependency, expected):
    assert parse_dependency_name(dependency) == expected


def _testdata_graph():
    return build_dependency_graph(
        load_repodata(os.path.join(TESTDATA, subdir, "repodata.json"))
        for subdir in ("noarch", "linux-64")
    )


def test_graph_from_testdata():
    graph = _testdata_graph()
    assert graph["a"] == {"b", "c", "d"}
    assert graph["b"] == {"c"}
    assert graph["c"] == NameSet()
    assert graph["d"] == {"c"}
    assert graph["e"] == NameSet()


def test_graph_lists_names_without_depends():
    repodata = Repodata(
        info=RepodataInfo(subdir="noarch"),
        packages={"solo-1-0.tar.bz2": RepodataRecord(name="solo", version="1", build="0")},
    )
    graph = {}
    update_dependency_graph(graph, repodata)
    assert graph == {"solo": NameSet()}


@pytest.mark.parametrize(
    "seed,expected",
    [
        ({"a"}, {"a", "b", "c", "d"}),
        ({"b"}, {"b", "c"}),
        ({"d", "e"}, {"c", "d", "e"}),
        ({"unknown"}, {"unknown"}),
        (set(), set()),
    ],
)
def test_resolve_closure(seed, expected):
    assert resolve_closure(_testdata_graph(), seed) == expected


def test_closure_terminates_on_cycles():
    graph = {
        "a": NameSet(["b"]),
        "b": NameSet(["c"]),
        "c": NameSet(["a"]),
        "self": NameSet(["self"]),
    }
    assert resolve_closure(graph, ["a"]) == {"a", "b", "c"}
    assert resolve_closure(graph, ["self"]) == {"self"}


def test_closure_includes_missing_dependencies():
    graph = {"a": NameSet(["ghost"])}
    assert resolve_closure(graph, NameSet(["a"])) == {"a", "ghost"}


def test_closure_does_not_modify_seed():
    seed = NameSet(["a"])
    resolve_closure(_testdata_graph(), seed)
    assert seed == {"a"}


@pytest.mark.parametrize(
    "seed,expected",
    [
        ({"a"}, {"a", "b", "c", "d"}),
        ({"e"}, {"e"}),
        ({"b", "e"}, {"b", "c", "e"}),
        ({"a", "b", "e"}, {"a", "b", "c", "d", "e"}),
    ],
)
def test_closure_on_literal_graph(seed, expected):
    graph = {
        "a": NameSet(["b", "c", "d"]),
        "b": NameSet(["c"]),
        "c": NameSet(),
        "d": NameSet(["c"]),
    }
    assert resolve_closure(graph, seed) == expected

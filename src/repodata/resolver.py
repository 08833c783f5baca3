"""By-name dependency graph and transitive closure.

No version constraints are evaluated: a dependency specifier only
contributes the package name in front of it, and the graph merges the
dependencies of every version and build of a package.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable

from .models import Repodata
from .nameset import NameSet

logger = logging.getLogger(__name__)

DependencyGraph = Dict[str, NameSet]

_NAME_SEPARATOR = re.compile(r"[ ><=]")


def parse_dependency_name(dependency: str) -> str:
    """Return the package name of a specifier such as ``"python >=3.10,<3.11"``."""
    return _NAME_SEPARATOR.split(dependency, maxsplit=1)[0]


def update_dependency_graph(graph: DependencyGraph, repodata: Repodata) -> None:
    """Add the dependency edges of every record in ``repodata`` to ``graph``.

    Every record name gets an entry, even when it has no dependencies.
    """
    for _, record in repodata.records():
        deps = graph.setdefault(record.name, NameSet())
        for dep in record.depends or ():
            deps.add(parse_dependency_name(dep))


def build_dependency_graph(catalogs: Iterable[Repodata]) -> DependencyGraph:
    graph: DependencyGraph = {}
    for repodata in catalogs:
        update_dependency_graph(graph, repodata)
    return graph


def resolve_closure(graph: DependencyGraph, seed: Iterable[str]) -> NameSet:
    """Names reachable from ``seed`` by following dependency edges.

    The seed itself is part of the result. Names missing from the graph are
    kept and treated as having no dependencies. Each name is expanded at most
    once, so cycles terminate.
    """
    result = NameSet()
    done = NameSet()
    pending = NameSet(seed)
    seed_count = len(pending)

    while pending:
        name = pending.pop()
        if name in done:
            continue
        result.add(name)
        for dep in graph.get(name, ()):
            result.add(dep)
            if dep not in done:
                pending.add(dep)
        done.add(name)

    logger.debug("Dependency closure: %d seed(s) -> %d name(s)", seed_count, len(result))
    return result

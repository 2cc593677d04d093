# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Dependency Resolver

Single responsibility: Order packages along their dependency edges, detect
cycles, missing dependencies and packages that would be left broken
"""

import logging
from enum import Enum
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set

from numpkg.core.errors import (
    CyclicDependency,
    NotFoundError,
    UnresolvableRequest,
    UnsatisfiedDependency,
)
from numpkg.models.registry_models import DependencyConstraint, PackageRecord, SafetyVerdict

from .version import satisfies

logger = logging.getLogger(__name__)


class _Mark(Enum):
    IN_PROGRESS = 1
    DONE = 2


class DependencyGraph:
    """
    Directed graph over package names.

    Edges point from a package to each declared dependency, in declaration
    order. Dependencies on the runtime itself are not edges.
    """

    def __init__(
        self,
        records: Mapping[str, PackageRecord],
        pending: Iterable[PackageRecord] = (),
        runtime_name: Optional[str] = None
    ):
        self.records: Dict[str, PackageRecord] = dict(records)
        for record in pending:
            self.records[record.name] = record
        self.runtime_name = runtime_name

    def __contains__(self, name: object) -> bool:
        return name in self.records

    def dependencies(self, name: str) -> List[DependencyConstraint]:
        record = self.records.get(name)
        if record is None:
            return []
        return [dep for dep in record.dependencies if dep.name != self.runtime_name]

    def dependents(self, name: str, among: Iterable[str]) -> Set[str]:
        """Names in `among` (other than `name`) that declare a dependency on `name`"""
        return {
            other for other in among
            if other != name and any(dep.name == name for dep in self.dependencies(other))
        }


def _walk(
    roots: Sequence[str],
    edges: Callable[[str], List[str]],
    on_cycle: Optional[Callable[[List[str]], Exception]] = None
) -> List[str]:
    """
    Iterative depth-first walk returning names in post-order.

    Nodes are marked in-progress while on the stack and done once all their
    edges are explored. Reaching an in-progress node is a cycle: `on_cycle`
    builds the exception to raise, or the back edge is ignored when None.
    """
    marks: Dict[str, _Mark] = {}
    order: List[str] = []

    for root in roots:
        if root in marks:
            continue
        marks[root] = _Mark.IN_PROGRESS
        path = [root]
        stack = [iter(edges(root))]
        while stack:
            child = next(stack[-1], None)
            if child is None:
                stack.pop()
                done = path.pop()
                marks[done] = _Mark.DONE
                order.append(done)
                continue
            mark = marks.get(child)
            if mark is _Mark.DONE:
                continue
            if mark is _Mark.IN_PROGRESS:
                if on_cycle is not None:
                    cycle = path[path.index(child):] + [child]
                    raise on_cycle(cycle)
                continue
            marks[child] = _Mark.IN_PROGRESS
            path.append(child)
            stack.append(iter(edges(child)))

    return order


def dependency_sorted(records: Sequence[PackageRecord]) -> List[PackageRecord]:
    """
    Sort records so providers precede their consumers.

    Cycles (possible after installs without dependency checks) are broken
    silently; ties keep the input order.
    """
    by_name = {record.name: record for record in records}

    def edges(name: str) -> List[str]:
        return [dep.name for dep in by_name[name].dependencies if dep.name in by_name]

    return [by_name[name] for name in _walk(list(by_name), edges)]


class DependencyResolver:
    """Resolves load, unload, uninstall and install orders"""

    def __init__(self, runtime_name: str = "octave", runtime_version: Optional[str] = None):
        """
        Initialize dependency resolver.

        Args:
            runtime_name: Name packages use to depend on the runtime itself
            runtime_version: Running runtime version, checked on install when set
        """
        self.runtime_name = runtime_name
        self.runtime_version = runtime_version

    def graph(
        self,
        effective: Mapping[str, PackageRecord],
        pending: Iterable[PackageRecord] = ()
    ) -> DependencyGraph:
        return DependencyGraph(effective, pending, runtime_name=self.runtime_name)

    def resolve_load_order(
        self,
        target: str,
        effective: Mapping[str, PackageRecord],
        allow_missing: bool = False,
        loaded: Iterable[str] = ()
    ) -> List[PackageRecord]:
        """
        Compute the order in which `target` and its dependencies are loaded.

        Dependencies come before their dependents; siblings keep their
        declaration order. Loaded packages are still checked for presence but
        left out of the result.

        Args:
            target: Package to load
            effective: Effective installed set
            allow_missing: Skip missing dependencies instead of failing
            loaded: Names already active in the session

        Returns:
            Records to activate, dependencies first

        Raises:
            NotFoundError: If target is not installed
            UnsatisfiedDependency: If a dependency is not installed
            CyclicDependency: If the dependency graph has a cycle
        """
        graph = self.graph(effective)
        if target not in graph:
            raise NotFoundError("Package", target)

        def edges(name: str) -> List[str]:
            deps = graph.dependencies(name)
            missing = [dep for dep in deps if dep.name not in graph]
            if missing:
                if not allow_missing:
                    raise UnsatisfiedDependency(name, [str(dep) for dep in missing])
                logger.warning(
                    f"Ignoring missing dependencies of {name}: {', '.join(str(d) for d in missing)}"
                )
            return [dep.name for dep in deps if dep.name in graph]

        order = _walk([target], edges, on_cycle=CyclicDependency)
        already = set(loaded)
        return [graph.records[name] for name in order if name not in already]

    def resolve_unload_safety(
        self,
        target: str,
        effective: Mapping[str, PackageRecord],
        loaded: Iterable[str],
        allow_missing: bool = False
    ) -> SafetyVerdict:
        """
        Check that no other loaded package depends on `target`.

        The verdict always lists every blocking package; with `allow_missing`
        it is still reported as ok.
        """
        graph = self.graph(effective)
        blocking = graph.dependents(target, [name for name in loaded if name in graph])
        return SafetyVerdict(
            target=target,
            ok=not blocking or allow_missing,
            blocked_by=sorted(blocking)
        )

    def resolve_uninstall_safety(
        self,
        target: str,
        installed: Mapping[str, PackageRecord],
        allow_missing: bool = False
    ) -> SafetyVerdict:
        """
        Check that no other installed package depends on `target`, loaded or not.
        """
        graph = self.graph(installed)
        blocking = graph.dependents(target, list(installed))
        return SafetyVerdict(
            target=target,
            ok=not blocking or allow_missing,
            blocked_by=sorted(blocking)
        )

    def resolve_install_order(
        self,
        requested: Sequence[PackageRecord],
        effective: Mapping[str, PackageRecord]
    ) -> List[str]:
        """
        Order a batch so that requested dependencies are installed first.

        Requested packages whose exact version is already installed are left
        out. Only edges between requested packages constrain the order.

        Raises:
            UnresolvableRequest: If requested packages form a cycle
        """
        pending: Dict[str, PackageRecord] = {}
        for record in requested:
            if record.name in pending:
                logger.warning(f"Package {record.name} requested more than once, using the first")
                continue
            installed = effective.get(record.name)
            if installed is not None and installed.version == record.version:
                logger.info(f"Package {record} is already installed")
                continue
            pending[record.name] = record

        graph = DependencyGraph(pending, runtime_name=self.runtime_name)

        def edges(name: str) -> List[str]:
            return [dep.name for dep in graph.dependencies(name) if dep.name in pending]

        return _walk(list(pending), edges, on_cycle=UnresolvableRequest)

    def check_dependencies(
        self,
        record: PackageRecord,
        effective: Mapping[str, PackageRecord]
    ):
        """
        Verify every constraint `record` declares against the installed set.

        Raises:
            UnsatisfiedDependency: Listing every unmet constraint
        """
        unmet = []
        for dep in record.dependencies:
            if dep.name == self.runtime_name:
                if self.runtime_version and dep.operator and dep.version:
                    if not satisfies(self.runtime_version, dep.operator, dep.version):
                        unmet.append(f"{dep} (running {self.runtime_version})")
                continue
            if dep.name == record.name:
                unmet.append(f"{dep} (depends on itself)")
                continue
            installed = effective.get(dep.name)
            if installed is None:
                unmet.append(str(dep))
            elif dep.operator and dep.version and not satisfies(installed.version, dep.operator, dep.version):
                unmet.append(f"{dep} (installed {installed.version})")
        if unmet:
            raise UnsatisfiedDependency(record.name, unmet)

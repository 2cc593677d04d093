# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Integration Tests for the Package Service

Drives every command through PackageService.execute.
"""

import pytest

from numpkg.core.errors import ConfigurationError, UnsatisfiedDependency, ValidationError
from numpkg.models.registry_models import CommandOptions, PackageStatus
from numpkg.services.registry import Command

from conftest import make_tarball


class RecordingRunner:
    """Suite runner recording the search path seen by each run"""

    def __init__(self, search_path, results=None):
        self.search_path = search_path
        self.results = results or {}
        self.runs = []

    def run(self, directories):
        self.runs.append((list(directories), self.search_path.snapshot()))
        return self.results.get(directories[0], True)


@pytest.fixture
def installed(service, sources):
    index = "a >> Package A\nMath\n demo_fn other_fn\n"
    archives = [
        make_tarball(sources, "b"),
        make_tarball(sources, "a", depends=["b"], index=index),
    ]
    report = service.execute(Command.INSTALL, [str(p) for p in archives])
    assert report.ok
    return {record.name: record for record in report.installed}


class TestCommandValidation:
    """Test suite for option and argument validation"""

    @pytest.mark.parametrize("command", [
        Command.UNINSTALL, Command.LOAD, Command.UNLOAD, Command.DESCRIBE,
        Command.UPDATE, Command.REBUILD, Command.TEST,
    ])
    def test_forge_only_with_install_and_list(self, service, command):
        with pytest.raises(ValidationError):
            service.execute(command, ["a"], CommandOptions(forge=True))

    def test_install_requires_sources(self, service):
        with pytest.raises(ValidationError):
            service.execute(Command.INSTALL, [])

    def test_test_requires_names(self, service):
        with pytest.raises(ValidationError):
            service.execute(Command.TEST, [])

    def test_local_and_global(self, service):
        with pytest.raises(ValidationError):
            service.execute(Command.LIST, [], CommandOptions(prefer_local=True, prefer_global=True))

    def test_command_from_string(self, service):
        assert service.execute("list", []) == ([], [])

    def test_forge_install_validates_names(self, service):
        with pytest.raises(ValidationError):
            service.execute(Command.INSTALL, ["../evil"], CommandOptions(forge=True))


class TestCommands:
    """Test suite for the command handlers"""

    def test_list_marks_loaded(self, service, installed):
        service.execute(Command.LOAD, ["b"])
        local, global_ = service.execute(Command.LIST, [])

        assert global_ == []
        assert {r.name: r.loaded for r in local} == {"b": True, "a": False}

    def test_list_filtered(self, service, installed):
        local, _ = service.execute(Command.LIST, ["a"])
        assert [r.name for r in local] == ["a"]

    def test_list_forge(self, service, forge_versions):
        forge_versions.update({"control": "4.0", "signal": "1.4.5"})
        assert service.execute(Command.LIST, [], CommandOptions(forge=True)) == ["control", "signal"]

    def test_load_and_unload(self, service, installed, search_path):
        loaded = service.execute(Command.LOAD, ["a"])
        assert [r.name for r in loaded] == ["b", "a"]
        assert search_path.is_active(installed["a"].directory)

        service.execute(Command.UNLOAD, ["a"])
        assert not search_path.is_active(installed["a"].directory)
        assert search_path.is_active(installed["b"].directory)

    def test_load_without_dependency_installed(self, service, sources):
        service.execute(Command.INSTALL, [str(make_tarball(sources, "a", depends=["b"]))], CommandOptions(no_deps=True))
        with pytest.raises(UnsatisfiedDependency) as exc:
            service.execute(Command.LOAD, ["a"])
        assert exc.value.missing == ["b"]

    def test_describe(self, service, installed):
        service.execute(Command.LOAD, ["b"])
        views = service.execute(Command.DESCRIBE, ["a", "b", "ghost"])

        assert [v.status for v in views] == [
            PackageStatus.NOT_LOADED, PackageStatus.LOADED, PackageStatus.NOT_INSTALLED,
        ]
        assert views[0].functions == {}
        assert views[0].record.version == "1.0.0"

    def test_describe_verbose_lists_functions(self, service, installed):
        views = service.execute(Command.DESCRIBE, ["a"], CommandOptions(verbose=True))
        assert views[0].functions == {"Math": ["demo_fn", "other_fn"]}

    def test_describe_all(self, service, installed):
        assert sorted(v.name for v in service.execute(Command.DESCRIBE, [])) == ["a", "b"]

    def test_uninstall(self, service, installed):
        removed = service.execute(Command.UNINSTALL, ["a"])
        assert [r.name for r in removed] == ["a"]
        assert service.store.load_local().names() == ["b"]

    def test_rebuild(self, service, installed, config):
        with open(config.local_list, "w") as f:
            f.write("garbage")
        registry = service.execute(Command.REBUILD, [])
        assert sorted(registry.names()) == ["a", "b"]

    def test_test_restores_search_path(self, service, installed, search_path):
        runner = RecordingRunner(search_path, results={installed["b"].directory: False})
        service.suite_runner = runner
        search_path.activate("/elsewhere")

        results = service.execute(Command.TEST, ["a", "b"])

        assert results == {"a": True, "b": False}
        directories, active = runner.runs[0]
        assert directories == [installed["a"].directory]
        assert installed["a"].directory in active
        assert installed["b"].directory in active
        assert search_path.entries == ["/elsewhere"]

    def test_test_all(self, service, installed, search_path):
        service.suite_runner = RecordingRunner(search_path)

        results = service.execute(Command.TEST, ["all"])

        assert results == {"b": True, "a": True}
        assert search_path.entries == []

    def test_test_restores_search_path_on_error(self, service, installed, search_path):
        with pytest.raises(ConfigurationError):
            service.execute(Command.TEST, ["a"])
        assert search_path.entries == []

    def test_autoload(self, service, sources, search_path):
        report = service.execute(Command.INSTALL, [str(make_tarball(sources, "auto", autoload=True))])
        service.autoload()
        assert search_path.is_active(report.installed[0].directory)

# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Integration Tests for Install and Uninstall

Uses real archives, the default fetcher and builder, and temporary prefixes.
"""

import json
import shutil
from pathlib import Path

import pytest

from numpkg.core.errors import BlockedBy, NotFoundError, ValidationError
from numpkg.models.registry_models import Installer, InstallOptions, Registry

from conftest import make_record, make_tarball


def registry_names(orchestrator, installer=Installer.USER):
    store = orchestrator.store
    return store.load(store.path_for(installer), installer).names()


class TestInstall:
    """Test suite for InstallOrchestrator.install"""

    def test_install_single_package(self, orchestrator, sources, config):
        archive = make_tarball(sources, "signal", "1.4.5")
        report = orchestrator.install([str(archive)])

        assert report.ok
        record = report.installed[0]
        assert record.installer is Installer.USER
        assert record.directory == str(Path(config.prefix) / "signal-1.4.5")
        assert (Path(record.directory) / "demo_fn.m").is_file()
        assert (Path(record.directory) / "packinfo" / "DESCRIPTION").is_file()
        assert (Path(record.directory) / "packinfo" / "COPYING").is_file()
        assert registry_names(orchestrator) == ["signal"]

    def test_staging_directories_are_removed(self, orchestrator, sources, config):
        orchestrator.install([str(make_tarball(sources, "a")), str(sources / "missing.tar.gz")])
        assert list(Path(config.staging_root).iterdir()) == []

    def test_missing_dependency_fails_package(self, orchestrator, sources):
        archive = make_tarball(sources, "a", depends=["b (>= 1.0)"])
        report = orchestrator.install([str(archive)])

        assert not report.ok
        assert "b (>= 1.0)" in report.failures[str(archive)]
        assert registry_names(orchestrator) == []

    def test_batch_installs_dependencies_first(self, orchestrator, sources):
        a = make_tarball(sources, "a", depends=["b"])
        b = make_tarball(sources, "b")
        report = orchestrator.install([str(a), str(b)])

        assert report.ok
        assert [r.name for r in report.installed] == ["b", "a"]
        assert registry_names(orchestrator) == ["b", "a"]

    def test_no_deps_skips_check(self, orchestrator, sources):
        archive = make_tarball(sources, "a", depends=["b"])
        report = orchestrator.install([str(archive)], InstallOptions(no_deps=True))
        assert report.ok
        assert registry_names(orchestrator) == ["a"]

    def test_runtime_version_is_checked(self, orchestrator, sources):
        archive = make_tarball(sources, "a", depends=["octave (>= 10.0)"])
        report = orchestrator.install([str(archive)])
        assert "octave (>= 10.0)" in report.failures[str(archive)]

    def test_same_version_is_skipped_unless_forced(self, orchestrator, sources):
        archive = make_tarball(sources, "a")
        orchestrator.install([str(archive)])

        report = orchestrator.install([str(archive)])
        assert report.skipped == ["a"]
        assert report.installed == []

        report = orchestrator.install([str(archive)], InstallOptions(force=True))
        assert [r.name for r in report.installed] == ["a"]

    def test_upgrade_replaces_previous_version(self, orchestrator, sources):
        old = orchestrator.install([str(make_tarball(sources / "old", "a", "1.0.0"))]).installed[0]
        new = orchestrator.install([str(make_tarball(sources / "new", "a", "1.1.0"))]).installed[0]

        assert not Path(old.directory).exists()
        assert Path(new.directory).exists()
        registry = orchestrator.store.load_local()
        assert registry.find_by_name("a").version == "1.1.0"
        assert len(registry) == 1

    def test_upgrade_keeps_package_loaded(self, orchestrator, sources, search_path):
        old = orchestrator.install([str(make_tarball(sources / "old", "a", "1.0.0"))]).installed[0]
        search_path.activate(old.directory)
        new = orchestrator.install([str(make_tarball(sources / "new", "a", "2.0.0"))]).installed[0]

        assert not search_path.is_active(old.directory)
        assert search_path.is_active(new.directory)

    def test_failed_upgrade_keeps_previous_install(self, orchestrator, sources, search_path, config, monkeypatch):
        old = orchestrator.install([str(make_tarball(sources / "old", "a", "1.0.0"))]).installed[0]
        search_path.activate(old.directory)

        def fail(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(shutil, "copy2", fail)
        archive = make_tarball(sources / "new", "a", "2.0.0")
        report = orchestrator.install([str(archive)])

        assert "disk full" in report.failures[str(archive)]
        record = orchestrator.store.load_local().find_by_name("a")
        assert record.version == "1.0.0"
        assert (Path(record.directory) / "packinfo" / "DESCRIPTION").is_file()
        assert search_path.is_active(old.directory)
        assert [p.name for p in Path(config.prefix).iterdir()] == ["a-1.0.0"]

    def test_failed_reinstall_restores_files_and_path(self, orchestrator, sources, search_path, config, monkeypatch):
        archive = make_tarball(sources, "a", "1.0.0")
        old = orchestrator.install([str(archive)]).installed[0]
        (Path(old.directory) / "marker").write_text("previous")
        search_path.activate(old.directory)

        def fail(registry):
            raise OSError("disk full")

        monkeypatch.setattr(orchestrator.store, "persist", fail)
        with pytest.raises(OSError):
            orchestrator.install([str(archive)], InstallOptions(force=True))

        assert (Path(old.directory) / "marker").read_text() == "previous"
        assert orchestrator.store.load_local().find_by_name("a").directory == old.directory
        assert search_path.is_active(old.directory)
        assert [p.name for p in Path(config.prefix).iterdir()] == ["a-1.0.0"]

    def test_forced_reinstall_replaces_files(self, orchestrator, sources):
        archive = make_tarball(sources, "a", "1.0.0")
        old = orchestrator.install([str(archive)]).installed[0]
        (Path(old.directory) / "marker").write_text("previous")

        new = orchestrator.install([str(archive)], InstallOptions(force=True)).installed[0]

        assert new.directory == old.directory
        assert not (Path(new.directory) / "marker").exists()
        assert (Path(new.directory) / "demo_fn.m").is_file()

    def test_stray_file_at_install_location_is_replaced(self, orchestrator, sources, config):
        orchestrator.install([str(make_tarball(sources / "old", "a", "1.0.0"))])
        (Path(config.prefix) / "a-2.0.0").write_text("stray")

        report = orchestrator.install([str(make_tarball(sources / "new", "a", "2.0.0"))])

        assert report.ok
        record = orchestrator.store.load_local().find_by_name("a")
        assert (Path(record.directory) / "packinfo" / "DESCRIPTION").is_file()
        assert [p.name for p in Path(config.prefix).iterdir()] == ["a-2.0.0"]

    def test_failures_are_isolated(self, orchestrator, sources):
        good = make_tarball(sources, "good")
        bad = sources / "broken.tar.gz"
        bad.write_bytes(b"not an archive")
        report = orchestrator.install([str(bad), str(good)])

        assert [r.name for r in report.installed] == ["good"]
        assert str(bad) in report.failures

    def test_cycle_members_fail_rest_installs(self, orchestrator, sources):
        a = make_tarball(sources, "a", depends=["b"])
        b = make_tarball(sources, "b", depends=["a"])
        c = make_tarball(sources, "c")
        report = orchestrator.install([str(a), str(b), str(c)], InstallOptions(no_deps=True))

        assert [r.name for r in report.installed] == ["c"]
        assert set(report.failures) == {str(a), str(b)}

    def test_global_install(self, orchestrator, sources, config):
        report = orchestrator.install([str(make_tarball(sources, "a"))], InstallOptions(prefer_global=True))

        record = report.installed[0]
        assert record.installer is Installer.SYSTEM
        assert record.directory.startswith(config.global_prefix)
        assert registry_names(orchestrator, Installer.SYSTEM) == ["a"]
        assert registry_names(orchestrator) == []

    def test_local_and_global_conflict(self, orchestrator):
        with pytest.raises(ValidationError):
            orchestrator.install(["x"], InstallOptions(prefer_local=True, prefer_global=True))

    def test_name_hint_for_forge(self, orchestrator):
        report = orchestrator.install(["signal"])
        assert "--forge signal" in report.failures["signal"]

    def test_transactions_are_logged(self, orchestrator, sources, config):
        orchestrator.install([str(make_tarball(sources, "a"))])
        lines = [json.loads(line) for line in Path(config.transactions_log).read_text().splitlines()]

        assert [line["status"] for line in lines] == ["in_progress", "completed"]
        assert lines[-1]["operation"] == "install"
        assert lines[-1]["package_name"] == "a"


class TestUninstall:
    """Test suite for InstallOrchestrator.uninstall"""

    @pytest.fixture
    def installed(self, orchestrator, sources):
        a = make_tarball(sources, "a", depends=["b"])
        b = make_tarball(sources, "b")
        report = orchestrator.install([str(b), str(a)])
        assert report.ok
        return {record.name: record for record in report.installed}

    def test_blocked_by_dependent(self, orchestrator, installed):
        with pytest.raises(BlockedBy) as exc:
            orchestrator.uninstall(["b"])

        assert exc.value.conflicts == {"b": ["a"]}
        assert exc.value.blocking == {"a"}
        assert registry_names(orchestrator) == ["b", "a"]
        assert Path(installed["b"].directory).exists()

    def test_override_removes_record(self, orchestrator, installed):
        removed = orchestrator.uninstall(["b"], InstallOptions(no_deps=True))

        assert [r.name for r in removed] == ["b"]
        assert registry_names(orchestrator) == ["a"]
        assert not Path(installed["b"].directory).exists()

    def test_dependents_removed_together(self, orchestrator, installed):
        orchestrator.uninstall(["b", "a"])
        assert registry_names(orchestrator) == []

    def test_not_installed(self, orchestrator, installed):
        with pytest.raises(NotFoundError):
            orchestrator.uninstall(["a", "ghost"])
        assert registry_names(orchestrator) == ["b", "a"]

    def test_unloads_package(self, orchestrator, installed, search_path):
        search_path.activate(installed["a"].directory)
        orchestrator.uninstall(["a"])
        assert not search_path.is_active(installed["a"].directory)

    def test_shadowed_global_keeps_dependents(self, orchestrator, installed, config, tmp_path):
        global_ = Registry(installer=Installer.SYSTEM)
        global_.add(make_record("b", "0.9.0", directory=str(tmp_path / "global" / "b-0.9.0")))
        orchestrator.store.persist(global_)

        orchestrator.uninstall(["b"], InstallOptions(prefer_local=True))

        effective = orchestrator.store.effective(orchestrator.store.load_local(), orchestrator.store.load_global())
        assert effective["b"].version == "0.9.0"
        assert effective["b"].installer is Installer.SYSTEM

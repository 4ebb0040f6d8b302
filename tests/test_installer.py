"""Tests for the install/update pipeline."""

import json
import logging

import pytest

from lockwright.cancellation import CancellationToken
from lockwright.errors import (
    ExecutionError,
    OperationCancelledError,
    StaleLockError,
    UnsatisfiableError,
)
from lockwright.installer import InstallerState

from .conftest import make_package, make_repository


def lock_of(project) -> dict:
    return json.loads(project.store.text)


@pytest.fixture
def repository():
    return make_repository(
        make_package("a/a", "1.0.0", require={"b/b": "^1.0"}),
        make_package("a/a", "1.1.0", require={"b/b": "^1.0"}),
        make_package("b/b", "1.0.0"),
    )


class TestInstall:
    """Test install runs with and without a lock."""

    def test_first_install_writes_lock(self, project_factory, repository):
        """Test that installing without a lock solves, installs and locks."""
        project = project_factory([repository], require={"a/a": "^1.0"})
        result = project.run()
        assert result.trace == ["Installing b/b (1.0.0)", "Installing a/a (1.1.0)"]
        assert result.state is InstallerState.LOCK_PERSISTED
        assert result.lock_changed
        assert project.installed_versions() == {"a/a": "1.1.0", "b/b": "1.0.0"}
        assert [p["name"] for p in lock_of(project)["packages"]] == ["a/a", "b/b"]
        assert lock_of(project)["hash"] == project.content_hash

    def test_second_install_is_a_no_op(self, project_factory, repository):
        """Test that a fresh lock matching the installed state does nothing."""
        project = project_factory([repository], require={"a/a": "^1.0"})
        project.run()
        result = project.run()
        assert result.operations == []
        assert result.state is InstallerState.LOCK_SKIPPED
        assert result.lock_record is None
        assert project.store.writes == 1

    def test_install_follows_the_lock(self, project_factory, repository):
        """Test that newer releases are ignored until an update."""
        project = project_factory([repository], require={"a/a": "^1.0"})
        project.run()
        repository.add_package(make_package("a/a", "1.2.0", require={"b/b": "^1.0"}))
        assert project.run().operations == []
        assert project.installed_versions()["a/a"] == "1.1.0"

        result = project.run(update=True)
        assert result.trace == ["Updating a/a (1.1.0) to a/a (1.2.0)"]
        assert lock_of(project)["packages"][0]["version"] == "1.2.0"
        assert project.store.writes == 2

    def test_install_from_lock_on_empty_state(self, project_factory, repository):
        """Test that a lock is reproduced without consulting the repositories."""
        source = project_factory([repository], require={"a/a": "^1.0"})
        source.run()
        project = project_factory([], lock=lock_of(source), require={"a/a": "^1.0"})
        result = project.run()
        assert result.trace == ["Installing b/b (1.0.0)", "Installing a/a (1.1.0)"]
        assert project.store.writes == 0

    def test_stale_lock(self, project_factory, repository):
        """Test that install refuses a lock written for another manifest."""
        project = project_factory([repository], require={"a/a": "^1.0"})
        project.run()
        project.set_manifest(require={"a/a": "^1.1"})
        with pytest.raises(StaleLockError, match="not up to date"):
            project.run()
        result = project.run(update=True)
        assert result.operations == []
        assert lock_of(project)["hash"] == project.content_hash

    def test_removed_requirement_is_uninstalled(self, project_factory, repository):
        """Test that packages no longer required are removed on update."""
        repository.add_package(make_package("c/c", "1.0.0"))
        project = project_factory([repository], require={"a/a": "^1.0", "c/c": "*"})
        project.run()
        project.set_manifest(require={"c/c": "*"})
        result = project.run(update=True)
        assert result.trace == ["Uninstalling a/a (1.1.0)", "Uninstalling b/b (1.0.0)"]
        assert project.installed_versions() == {"c/c": "1.0.0"}


class TestDryRun:
    """Test that dry runs report without side effects."""

    def test_matches_a_real_run(self, project_factory, repository):
        """Test that a dry run plans the same operations and lock record."""
        dry = project_factory([repository], require={"a/a": "^1.0"})
        real = project_factory([repository], require={"a/a": "^1.0"})
        planned = dry.run(dry_run=True)
        executed = real.run()

        assert planned.trace == executed.trace
        assert planned.lock_record == lock_of(real)
        assert planned.state is InstallerState.LOCK_SKIPPED
        assert dry.store.writes == 0
        assert dry.installed_versions() == {}
        assert dry.manager.trace == []

    def test_update_dry_run_keeps_lock(self, project_factory, repository):
        """Test that an update dry run leaves the lock untouched."""
        project = project_factory([repository], require={"a/a": "^1.0"})
        project.run()
        before = project.store.text
        repository.add_package(make_package("b/b", "1.5.0"))
        result = project.run(update=True, dry_run=True)
        assert result.trace == ["Updating b/b (1.0.0) to b/b (1.5.0)"]
        assert project.store.text == before


class TestFailures:
    """Test error paths of a run."""

    def test_execution_failure_keeps_lock(self, project_factory, repository):
        """Test that a failed operation stops the run before locking."""
        project = project_factory([repository], require={"a/a": "^1.0"})
        with pytest.raises(ExecutionError) as excinfo:
            project.run(fail_on={"a/a"})
        assert [op.package.name for op in excinfo.value.succeeded] == ["b/b"]
        assert project.store.writes == 0
        assert project.installed_versions() == {"b/b": "1.0.0"}

    def test_cancellation(self, project_factory, repository):
        """Test that a cancelled run does nothing."""
        token = CancellationToken()
        token.cancel("interrupted")
        project = project_factory([repository], require={"a/a": "^1.0"})
        with pytest.raises(OperationCancelledError, match="interrupted"):
            project.run(token=token)
        assert project.store.writes == 0
        assert project.installed_versions() == {}

    def test_circular_requirements(self, project_factory):
        """Test that packages requiring each other install and lock."""
        repo = make_repository(
            make_package("a/a", "1.0.0", require={"b/b": "^1.0"}),
            make_package("b/b", "1.0.0", require={"a/a": "^1.0"}),
        )
        project = project_factory([repo], require={"a/a": "^1.0"})
        result = project.run(update=True)
        assert result.trace == ["Installing a/a (1.0.0)", "Installing b/b (1.0.0)"]
        assert [p["name"] for p in lock_of(project)["packages"]] == ["a/a", "b/b"]
        assert project.run().operations == []

    def test_unsatisfiable(self, project_factory, repository):
        """Test that impossible requirements are reported."""
        project = project_factory([repository], require={"a/a": "^2.0"})
        with pytest.raises(UnsatisfiableError) as excinfo:
            project.run()
        assert "a/a" in excinfo.value.package_names
        assert project.store.writes == 0


class TestPartialUpdate:
    """Test updates restricted to listed packages."""

    def setup_method(self):
        self.repository = make_repository(
            make_package("a/a", "1.0.0", require={"b/b": "^1.0"}),
            make_package("b/b", "1.0.0"),
            make_package("c/c", "1.0.0"),
        )

    def make_project(self, project_factory):
        project = project_factory([self.repository], require={"a/a": "^1.0", "c/c": "^1.0"})
        project.run()
        for name in ("a/a", "b/b", "c/c"):
            self.repository.add_package(
                make_package(name, "1.1.0", require={"b/b": "^1.0"} if name == "a/a" else {})
            )
        return project

    def test_only_listed_packages_move(self, project_factory):
        """Test that unlisted packages stay at their locked versions."""
        project = self.make_project(project_factory)
        result = project.run(update=True, update_whitelist=["a/a"])
        assert result.trace == ["Updating a/a (1.0.0) to a/a (1.1.0)"]
        assert project.installed_versions() == {"a/a": "1.1.0", "b/b": "1.0.0", "c/c": "1.0.0"}

    def test_with_dependencies(self, project_factory):
        """Test that dependencies of listed packages may move too."""
        project = self.make_project(project_factory)
        result = project.run(update=True, update_whitelist=["a/a"], whitelist_dependencies=True)
        assert result.trace == [
            "Updating b/b (1.0.0) to b/b (1.1.0)",
            "Updating a/a (1.0.0) to a/a (1.1.0)",
        ]
        assert project.installed_versions()["c/c"] == "1.0.0"

    def test_wildcards(self, project_factory):
        """Test that entries may use wildcards."""
        project = self.make_project(project_factory)
        result = project.run(update=True, update_whitelist=["*/c"])
        assert result.trace == ["Updating c/c (1.0.0) to c/c (1.1.0)"]

    def test_unknown_entry_warns(self, project_factory, caplog):
        """Test that entries matching nothing are reported and ignored."""
        project = self.make_project(project_factory)
        with caplog.at_level(logging.DEBUG, logger="lockwright"):
            result = project.run(update=True, update_whitelist=["nope/*", "a/a"])
        assert result.trace == ["Updating a/a (1.0.0) to a/a (1.1.0)"]
        assert result.warnings == [
            "Package 'nope/*' listed for update is not installed or required, ignoring"
        ]
        assert "nope/*" in caplog.text
        assert project.run(update=True, update_whitelist=["a/a"]).warnings == []


class TestRootManifest:
    """Test the manifest's own links."""

    def test_replace_satisfies_requirements(self, project_factory):
        """Test that a replaced name is not installed."""
        repo = make_repository(make_package("a/a", "1.0.0", require={"b/b": "^1.0"}))
        project = project_factory([repo], require={"a/a": "*"}, replace={"b/b": "1.0.0"})
        result = project.run()
        assert result.trace == ["Installing a/a (1.0.0)"]
        assert [p["name"] for p in lock_of(project)["packages"]] == ["a/a"]

    def test_conflict(self, project_factory, repository):
        """Test that the manifest's conflicts exclude packages."""
        project = project_factory([repository], require={"a/a": "*"}, conflict={"b/b": "<2.0"})
        with pytest.raises(UnsatisfiableError) as excinfo:
            project.run()
        assert "b/b" in excinfo.value.package_names

    def test_platform_overrides(self, project_factory, repository):
        """Test platform requirements against configured platform versions."""
        project = project_factory(
            [repository], require={"a/a": "*", "php": ">=8.0"}, config={"platform": {"php": "8.2.0"}}
        )
        assert project.run().trace == ["Installing b/b (1.0.0)", "Installing a/a (1.1.0)"]
        assert lock_of(project)["platform"] == {"php": ">=8.0"}
        assert lock_of(project)["platform-overrides"] == {"php": "8.2.0"}

        project = project_factory(
            [repository], require={"a/a": "*", "php": ">=8.0"}, config={"platform": {"php": "7.4.0"}}
        )
        with pytest.raises(UnsatisfiableError, match="php"):
            project.run()
        assert project.run(ignore_platform_reqs=True).operations

    def test_platform_checked_when_installing_from_lock(self, project_factory, repository):
        """Test that a lock written while ignoring the platform is checked on install."""
        project = project_factory(
            [repository], require={"a/a": "*", "php": ">=8.0"}, config={"platform": {"php": "7.4.0"}}
        )
        project.run(ignore_platform_reqs=True)
        with pytest.raises(UnsatisfiableError, match="php"):
            project.run()

    def test_root_alias(self, project_factory):
        """Test that a root alias satisfies a versioned requirement on a branch."""
        repo = make_repository(
            make_package("a/a", "dev-master", ref="1" * 40),
            make_package("b/b", "1.0.0", require={"a/a": "^1.0"}),
        )
        project = project_factory([repo], require={"a/a": "dev-master as 1.0.0", "b/b": "*"})
        result = project.run()
        assert result.trace == [
            "Installing a/a (dev-master 1111111)",
            "Marking a/a (1.0.0) as installed, alias of a/a (dev-master 1111111)",
            "Installing b/b (1.0.0)",
        ]
        assert lock_of(project)["aliases"][0]["alias"] == "1.0.0"


class TestDevRequirements:
    """Test the split between packages and packages-dev."""

    def setup_method(self):
        self.repository = make_repository(
            make_package("a/a", "1.0.0", require={"b/b": "*"}),
            make_package("b/b", "1.0.0"),
            make_package("c/c", "1.0.0"),
            make_package("t/t", "1.0.0", require={"b/b": "*", "c/c": "*"}),
        )
        self.manifest = {"require": {"a/a": "*"}, "require_dev": {"t/t": "*"}}

    def test_split(self, project_factory):
        """Test that packages only reached through require-dev are dev packages."""
        project = project_factory([self.repository], **self.manifest)
        project.run()
        assert [p["name"] for p in lock_of(project)["packages"]] == ["a/a", "b/b"]
        assert [p["name"] for p in lock_of(project)["packages-dev"]] == ["c/c", "t/t"]

    def test_no_dev_install_from_lock(self, project_factory):
        """Test that --no-dev installs only the production section."""
        source = project_factory([self.repository], **self.manifest)
        source.run()
        project = project_factory([], lock=lock_of(source), **self.manifest)
        project.run(dev_mode=False)
        assert project.installed_versions() == {"a/a": "1.0.0", "b/b": "1.0.0"}

    def test_no_dev_update(self, project_factory):
        """Test that a no-dev update locks packages-dev as null."""
        project = project_factory([self.repository], **self.manifest)
        result = project.run(update=True, dev_mode=False)
        assert [op.package.name for op in result.operations] == ["b/b", "a/a"]
        assert lock_of(project)["packages-dev"] is None
        with pytest.raises(StaleLockError, match="require-dev"):
            project.run()


class TestScenarios:
    """End-to-end runs over small repositories."""

    def setup_method(self):
        self.repository = make_repository(
            make_package("a/a", "1.0.0"),
            make_package("a/a", "1.1.0"),
            make_package("a/a", "2.0.0"),
        )

    def test_highest_matching_version(self, project_factory):
        """Test that update selects the highest version matching ^1.0."""
        project = project_factory([self.repository], require={"a/a": "^1.0"})
        result = project.run(update=True)
        assert result.trace == ["Installing a/a (1.1.0)"]
        assert lock_of(project)["hash"] == project.content_hash

    def test_only_unmatched_versions(self, project_factory):
        """Test that a requirement no version matches fails without a lock."""
        repo = make_repository(make_package("a/a", "2.0.0"))
        project = project_factory([repo], require={"a/a": "^1.0"})
        with pytest.raises(UnsatisfiableError):
            project.run(update=True)
        assert project.store.text is None

    def test_tightened_requirement_updates(self, project_factory):
        """Test that an installed version outside the new constraint is updated."""
        project = project_factory(
            [self.repository], installed=[make_package("a/a", "1.0.0")], require={"a/a": "^2.0"}
        )
        result = project.run(update=True)
        assert result.trace == ["Updating a/a (1.0.0) to a/a (2.0.0)"]

    def test_installed_version_is_kept_outside_the_update_scope(self, project_factory):
        """Test that installed packages win over newer ones on a partial update without a lock."""
        project = project_factory(
            [self.repository],
            installed=[make_package("a/a", "1.0.0"), make_package("b/b", "1.0.0")],
            require={"a/a": "^1.0", "b/b": "*"},
        )
        self.repository.add_package(make_package("b/b", "1.0.0"))
        self.repository.add_package(make_package("b/b", "1.5.0"))
        result = project.run(update=True, update_whitelist=["b/b"])
        assert result.trace == ["Updating b/b (1.0.0) to b/b (1.5.0)"]
        assert project.installed_versions()["a/a"] == "1.0.0"

"""Tests for the role catalog and its YAML loader."""

import pytest

from portal.core.rbac.catalog import (
    CatalogConfigError,
    CatalogHolder,
    RoleCatalog,
    default_catalog,
    load_catalog,
)
from portal.core.rbac.permissions import EntityType, Permissions, Workspace
from portal.core.rbac.roles import Role


SPONSOR_ONLY_YAML = """
roles:
  sponsor:
    permissions:
      - sponsor.workspace.access
      - sponsor.modifications.authorise
    statuses:
      modification: [With sponsor]
workspaces:
  sponsor: [sponsor]
"""


def write_catalog(tmp_path, content, name="catalog.yaml"):
    path = tmp_path / name
    path.write_text(content, encoding="utf-8")
    return path


class TestDefaultCatalog:
    """Test the catalog built from the static tables."""

    def test_permissions_union(self, catalog):
        """Test permissions of several roles are unioned."""
        perms = catalog.permissions_for([Role.APPLICANT, Role.SPONSOR])
        assert Permissions.MyResearch.MODIFICATIONS_SUBMIT in perms
        assert Permissions.Sponsor.MODIFICATIONS_AUTHORISE in perms

    def test_unknown_role_adds_nothing(self, catalog):
        """Test roles without table entries grant nothing."""
        assert catalog.permissions_for([Role.PORTAL_USER]) == frozenset()

    def test_allowed_statuses_has_every_entity(self, catalog):
        """Test every entity type is present even when empty."""
        statuses = catalog.allowed_statuses_for([])
        assert set(statuses) == set(EntityType)
        assert all(values == frozenset() for values in statuses.values())

    def test_allowed_statuses_union(self, catalog):
        """Test statuses of several roles are unioned per entity."""
        statuses = catalog.allowed_statuses_for([Role.SPONSOR, Role.STUDYWIDE_REVIEWER])
        assert "With sponsor" in statuses[EntityType.MODIFICATION]
        assert "Received" in statuses[EntityType.MODIFICATION]

    def test_roles_for_workspace(self, catalog):
        """Test workspace membership lookup."""
        assert Role.SYSTEM_ADMINISTRATOR in catalog.roles_for_workspace(Workspace.SYSTEM_ADMINISTRATION)
        assert catalog.roles_for_workspace(Workspace.CAT) == frozenset()

    def test_snapshot_is_read_only(self, catalog):
        """Test the snapshot tables cannot be mutated."""
        with pytest.raises(TypeError):
            catalog.role_permissions[Role.APPLICANT] = frozenset()


class TestLoadCatalog:
    """Test loading a catalog from YAML."""

    def test_load_valid_file(self, tmp_path):
        """Test a valid file becomes a catalog snapshot."""
        loaded = load_catalog(write_catalog(tmp_path, SPONSOR_ONLY_YAML))

        assert isinstance(loaded, RoleCatalog)
        assert loaded.permissions_for([Role.SPONSOR]) == frozenset({
            Permissions.Sponsor.WORKSPACE_ACCESS,
            Permissions.Sponsor.MODIFICATIONS_AUTHORISE,
        })
        assert loaded.allowed_statuses_for([Role.SPONSOR])[EntityType.MODIFICATION] == {"With sponsor"}
        assert loaded.roles_for_workspace(Workspace.SPONSOR) == {Role.SPONSOR}

    def test_missing_workspaces_uses_default_matrix(self, tmp_path):
        """Test omitting workspaces falls back to the default membership."""
        content = """
roles:
  applicant:
    permissions: [myresearch.workspace.access]
"""
        loaded = load_catalog(write_catalog(tmp_path, content))
        assert loaded.workspace_roles == default_catalog().workspace_roles

    def test_empty_file(self, tmp_path):
        """Test an empty file yields an empty role table."""
        loaded = load_catalog(write_catalog(tmp_path, ""))
        assert dict(loaded.role_permissions) == {}

    @pytest.mark.parametrize("content,message", [
        ("- just\n- a list\n", "root must be a mapping"),
        ("roles:\n  auditor: {}\n", "unknown role"),
        ("roles:\n  sponsor:\n    permissions: [sponsor.modifications.delete]\n", "unknown permission"),
        ("roles:\n  sponsor:\n    statuses:\n      invoice: [Approved]\n", "unknown entity type"),
        ("roles:\n  sponsor:\n    statuses:\n      modification: [Shredded]\n", "unknown status"),
        ("workspaces:\n  billing: [sponsor]\n", "unknown workspace"),
        ("workspaces:\n  sponsor: [auditor]\n", "unknown role"),
        ("roles:\n  sponsor:\n    permissions: sponsor.workspace.access\n", "must be a list"),
    ])
    def test_invalid_files(self, tmp_path, content, message):
        """Test invalid files raise CatalogConfigError."""
        with pytest.raises(CatalogConfigError, match=message):
            load_catalog(write_catalog(tmp_path, content))

    def test_display_status_is_accepted(self, tmp_path):
        """Test display labels are valid modification statuses in a file."""
        content = """
roles:
  studywide_reviewer:
    statuses:
      modification: [Received, Review in progress]
"""
        loaded = load_catalog(write_catalog(tmp_path, content))
        statuses = loaded.allowed_statuses_for([Role.STUDYWIDE_REVIEWER])
        assert statuses[EntityType.MODIFICATION] == {"Received", "Review in progress"}


class TestCatalogHolder:
    """Test swapping catalog snapshots."""

    def test_defaults_to_static_tables(self):
        """Test a holder without a file uses the default catalog."""
        holder = CatalogHolder()
        assert holder.current == default_catalog()

    def test_swap_returns_previous(self, catalog):
        """Test swap replaces the snapshot and returns the old one."""
        holder = CatalogHolder(catalog)
        replacement = RoleCatalog.build({}, {}, {})

        previous = holder.swap(replacement)

        assert previous is catalog
        assert holder.current is replacement

    def test_snapshot_taken_before_swap_is_unchanged(self, catalog):
        """Test readers keep their snapshot across a swap."""
        holder = CatalogHolder(catalog)
        snapshot = holder.current

        holder.swap(RoleCatalog.build({}, {}, {}))

        assert Permissions.Sponsor.MODIFICATIONS_AUTHORISE in snapshot.permissions_for([Role.SPONSOR])

    def test_reload_from_file(self, tmp_path):
        """Test reload picks up changes to the file."""
        path = write_catalog(tmp_path, SPONSOR_ONLY_YAML)
        holder = CatalogHolder(path=path)
        path.write_text("roles:\n  applicant:\n    permissions: [myresearch.workspace.access]\n")

        reloaded = holder.reload()

        assert holder.current is reloaded
        assert set(reloaded.role_permissions) == {Role.APPLICANT}

    def test_bad_reload_keeps_current(self, tmp_path):
        """Test a file that fails validation leaves the snapshot in place."""
        path = write_catalog(tmp_path, SPONSOR_ONLY_YAML)
        holder = CatalogHolder(path=path)
        before = holder.current
        path.write_text("roles:\n  auditor: {}\n")

        with pytest.raises(CatalogConfigError):
            holder.reload()

        assert holder.current is before

    def test_reload_without_file(self, catalog):
        """Test reload needs a configured file."""
        with pytest.raises(CatalogConfigError, match="no catalog file"):
            CatalogHolder(catalog).reload()

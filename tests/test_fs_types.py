"""Tests for permissions, resource addressing, result types, and config."""

from __future__ import annotations

import pytest

from canopy.config import CanopyConfig
from canopy.fs.exceptions import ValidationError
from canopy.fs.permissions import Permission, SharePermission
from canopy.fs.types import DestroyResult, FolderListing, NodeInfo, Resource, ResourceKind


class TestPermission:
    def test_ordering(self) -> None:
        assert Permission.OWNER.satisfies(Permission.EDIT)
        assert Permission.EDIT.satisfies(Permission.VIEW)
        assert Permission.VIEW.satisfies(Permission.VIEW)
        assert not Permission.VIEW.satisfies(Permission.EDIT)
        assert not Permission.EDIT.satisfies(Permission.OWNER)
        assert not Permission.NONE.satisfies(Permission.VIEW)

    def test_flags(self) -> None:
        assert Permission.OWNER.can_edit
        assert Permission.EDIT.can_edit
        assert not Permission.VIEW.can_edit
        assert Permission.VIEW.can_view
        assert not Permission.NONE.can_view

    def test_from_share(self) -> None:
        assert Permission.from_share("view") is Permission.VIEW
        assert Permission.from_share(SharePermission.EDIT) is Permission.EDIT

    def test_share_permission_parse(self) -> None:
        assert SharePermission.parse("edit") is SharePermission.EDIT
        with pytest.raises(ValidationError, match="Invalid permission"):
            SharePermission.parse("owner")


class TestResource:
    def test_constructors(self) -> None:
        assert Resource.folder("a") == Resource(ResourceKind.FOLDER, "a")
        assert Resource.file("a") != Resource.folder("a")
        assert Resource.folder("a").is_folder
        assert not Resource.file("a").is_folder

    def test_hashable(self) -> None:
        assert len({Resource.file("a"), Resource.file("a"), Resource.folder("a")}) == 2

    def test_str(self) -> None:
        assert str(Resource.file("x1")) == "file:x1"

    def test_kind_parse(self) -> None:
        assert ResourceKind.parse("folder") is ResourceKind.FOLDER
        assert ResourceKind.parse(ResourceKind.FILE) is ResourceKind.FILE
        with pytest.raises(ValidationError, match="Invalid resource kind"):
            ResourceKind.parse("directory")


class TestResultTypes:
    def test_destroy_result_merge(self) -> None:
        total = DestroyResult(message="Trash emptied")
        total.merge(DestroyResult(message="a", folders_deleted=2, files_deleted=1, blob_keys=["k1"]))
        total.merge(DestroyResult(message="b", files_deleted=2, shares_deleted=3, blob_keys=["k2", "k3"]))
        assert total.folders_deleted == 2
        assert total.files_deleted == 3
        assert total.total_deleted == 5
        assert total.shares_deleted == 3
        assert total.blob_keys == ["k1", "k2", "k3"]
        assert total.message == "Trash emptied"

    def test_node_info(self) -> None:
        info = NodeInfo(resource=Resource.folder("f1"), name="Docs", owner_id="alice")
        assert info.id == "f1"
        assert info.is_folder

    def test_listing_count(self) -> None:
        listing = FolderListing(
            folder=None,
            folders=[NodeInfo(resource=Resource.folder("a"), name="a", owner_id="u")],
            files=[NodeInfo(resource=Resource.file("b"), name="b", owner_id="u")],
        )
        assert listing.item_count == 2


class TestCanopyConfig:
    def test_share_url(self) -> None:
        config = CanopyConfig(base_url="https://example.com/")
        assert config.share_url("abc") == "https://example.com/s/abc"

    def test_defaults(self) -> None:
        config = CanopyConfig()
        assert config.max_ancestor_depth == 100
        assert config.token_bytes == 16
        assert config.create_tables

    def test_rejects_bad_values(self) -> None:
        with pytest.raises(ValueError, match="max_ancestor_depth"):
            CanopyConfig(max_ancestor_depth=0)
        with pytest.raises(ValueError, match="token_bytes"):
            CanopyConfig(token_bytes=8)

"""
Tests for the Deployment Version Store.
"""

import pytest
import asyncio

from routeflow.deployments import DeploymentStore, Permission, normalize_version_name
from routeflow.errors import ValidationError, VersionNotFoundError, WorkflowNotFoundError


STATE = {
    "blocks": [
        {"id": "trigger", "kind": "chat_trigger"},
        {"id": "reply", "kind": "chat_response", "config": {"message": "Hi"}},
    ],
    "edges": [{"id": "e1", "source": "trigger", "target": "reply"}],
}


async def store_with_versions(count: int, active: int = None):
    """A fresh store holding one workflow with ``count`` versions."""
    store = DeploymentStore()
    await store.add_user("u1", "Una", api_key="key-1")
    await store.create_workflow("ws-1", owner_id="u1", workflow_id="wf-1")
    for _ in range(count):
        await store.deploy("wf-1", STATE, created_by="u1", activate=False)
    if active is not None:
        await store.activate("wf-1", active)
    return store


async def active_versions(store: DeploymentStore, workflow_id: str = "wf-1"):
    return [v.version for v in await store.list(workflow_id) if v.is_active]


# ============================================================
# Name Validation Tests
# ============================================================

class TestVersionNames:
    """Tests for version name normalization."""

    def test_trims(self):
        """Test that surrounding whitespace is removed."""
        assert normalize_version_name("  Release 1  ") == "Release 1"

    def test_boundaries(self):
        """Test the empty and maximum length boundaries."""
        with pytest.raises(ValidationError):
            normalize_version_name("")
        with pytest.raises(ValidationError):
            normalize_version_name("   ")
        with pytest.raises(ValidationError):
            normalize_version_name("x" * 101)
        assert normalize_version_name("x" * 100) == "x" * 100

    def test_non_string(self):
        """Test that non-string names are rejected."""
        with pytest.raises(ValidationError) as exc_info:
            normalize_version_name(42)
        assert exc_info.value.message == "Name must be a string"


# ============================================================
# Store Tests
# ============================================================

class TestDeploymentStore:
    """Tests for DeploymentStore."""

    @pytest.mark.asyncio
    async def test_deploy_numbers_versions(self):
        """Test that versions are numbered from 1 and the latest deploy is active."""
        store = DeploymentStore()
        await store.create_workflow("ws-1", owner_id="u1", workflow_id="wf-1")

        first = await store.deploy("wf-1", STATE, created_by="u1")
        second = await store.deploy("wf-1", STATE, created_by="u1", name="  Second ")

        assert (first.version, second.version) == (1, 2)
        assert second.name == "Second"
        assert await active_versions(store) == [2]
        workflow = await store.get_workflow("wf-1")
        assert workflow.is_deployed
        assert workflow.deployed_at is not None

    @pytest.mark.asyncio
    async def test_deploy_rejects_invalid_state(self):
        """Test that an invalid graph is not stored."""
        store = await store_with_versions(1)
        bad = {"blocks": [{"id": "x", "kind": "teleporter"}], "edges": []}

        with pytest.raises(ValidationError):
            await store.deploy("wf-1", bad)
        assert [v.version for v in await store.list("wf-1")] == [1]

    @pytest.mark.asyncio
    async def test_deploy_unknown_workflow(self):
        """Test deploying to a workflow that does not exist."""
        with pytest.raises(WorkflowNotFoundError):
            await DeploymentStore().deploy("ghost", STATE)

    @pytest.mark.asyncio
    async def test_activation_round_trip(self):
        """Test that activating 5 after 3 leaves only 5 active."""
        store = await store_with_versions(5, active=3)
        assert await active_versions(store) == [3]

        deployed_at = await store.activate("wf-1", 5)

        assert await active_versions(store) == [5]
        assert (await store.get_active("wf-1")).version == 5
        assert (await store.get_workflow("wf-1")).deployed_at == deployed_at

    @pytest.mark.asyncio
    async def test_activation_is_atomic(self):
        """Test that activating a missing version changes nothing."""
        store = await store_with_versions(3, active=2)
        before = await store.get_workflow("wf-1")

        with pytest.raises(VersionNotFoundError) as exc_info:
            await store.activate("wf-1", 99)

        assert exc_info.value.message == "Deployment version not found"
        assert await active_versions(store) == [2]
        assert (await store.get_workflow("wf-1")).deployed_at == before.deployed_at

    @pytest.mark.asyncio
    async def test_concurrent_activations(self):
        """Test that racing activations leave exactly one active version."""
        store = await store_with_versions(4, active=1)

        await asyncio.gather(*(store.activate("wf-1", v) for v in (2, 3, 4, 2, 3)))

        assert len(await active_versions(store)) == 1

    @pytest.mark.asyncio
    async def test_concurrent_deploys(self):
        """Test that racing deploys get distinct consecutive versions."""
        store = await store_with_versions(0)

        rows = await asyncio.gather(*(store.deploy("wf-1", STATE) for _ in range(5)))

        assert sorted(r.version for r in rows) == [1, 2, 3, 4, 5]
        assert len(await active_versions(store)) == 1

    @pytest.mark.asyncio
    async def test_transaction_rolls_back(self):
        """Test that staged writes are dropped when the transaction raises."""
        store = await store_with_versions(2, active=1)

        with pytest.raises(RuntimeError):
            async with store.transaction("wf-1") as tx:
                tx.deactivate_all()
                tx.update(tx.find(2), is_active=True, name="staged")
                raise RuntimeError("abort")

        assert await active_versions(store) == [1]
        assert (await store.get("wf-1", 2)).name is None

    @pytest.mark.asyncio
    async def test_rename(self):
        """Test renaming, including idempotent renames."""
        store = await store_with_versions(1)

        assert await store.rename("wf-1", 1, "  Hotfix ") == "Hotfix"
        assert await store.rename("wf-1", 1, "Hotfix") == "Hotfix"
        assert (await store.get("wf-1", 1)).name == "Hotfix"

    @pytest.mark.asyncio
    async def test_rename_boundaries(self):
        """Test that invalid names are rejected and the old name kept."""
        store = await store_with_versions(1)
        await store.rename("wf-1", 1, "Original")

        for bad in ("", "x" * 101):
            with pytest.raises(ValidationError):
                await store.rename("wf-1", 1, bad)
        assert (await store.get("wf-1", 1)).name == "Original"

        assert await store.rename("wf-1", 1, "y" * 100) == "y" * 100

    @pytest.mark.asyncio
    async def test_rename_missing_version(self):
        """Test renaming a version that does not exist."""
        store = await store_with_versions(1)
        with pytest.raises(VersionNotFoundError):
            await store.rename("wf-1", 7, "Nope")

    @pytest.mark.asyncio
    async def test_list_newest_first(self):
        """Test listing order and creator names."""
        store = await store_with_versions(3)

        versions = await store.list("wf-1")

        assert [v.version for v in versions] == [3, 2, 1]
        assert all(v.deployed_by == "Una" for v in versions)
        assert await store.list("ghost") == []

    @pytest.mark.asyncio
    async def test_access_context(self):
        """Test owner and workspace permission resolution."""
        store = await store_with_versions(0)
        await store.add_user("u2", "Rae")
        await store.add_user("u3", "Wes")
        await store.grant("ws-1", "u2", Permission.READ)
        await store.grant("ws-1", "u3", "write")

        owner = await store.access_context("wf-1", "u1")
        reader = await store.access_context("wf-1", "u2")
        writer = await store.access_context("wf-1", "u3")
        stranger = await store.access_context("wf-1", "nobody")

        assert owner.is_owner and owner.can_write
        assert reader.can_read and not reader.can_write
        assert writer.can_write
        assert not stranger.can_read
        assert await store.access_context("ghost", "u1") is None

    @pytest.mark.asyncio
    async def test_api_key_lookup(self):
        """Test resolving users by API key."""
        store = await store_with_versions(0)
        assert (await store.get_user_by_api_key("key-1")).id == "u1"
        assert await store.get_user_by_api_key("wrong") is None
        assert await store.get_user_by_api_key("") is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

"""Tests for configuration entries and InMemoryProjectStore."""

import pytest

from foundry_k8s import ConfigEntry, Environment, InMemoryProjectStore, Project, ProjectStatus
from foundry_k8s.configuration import entries_to_map, normalize_entries, open_entries, seal_entries
from foundry_k8s.errors import NotFoundError


class TestConfigEntries:
    """Test cases for configuration entry helpers."""

    def test_normalize(self):
        """Test blank keys are dropped and the last duplicate wins."""
        entries = normalize_entries([
            ConfigEntry(key="A", value="1"),
            ConfigEntry(key="", value="x"),
            ConfigEntry(key="A", value="2"),
            ConfigEntry(key="B"),
        ])

        assert entries_to_map(entries) == {"A": "2", "B": ""}

    def test_seal_skips_empty_values(self, cipher):
        sealed = seal_entries([ConfigEntry(key="A", value="1"), ConfigEntry(key="B")], cipher)

        assert sealed[0].value == "enc:1"
        assert sealed[1].value == ""

    def test_open_keeps_undecryptable_values(self, cipher):
        """Test values stored before encryption are returned as-is."""
        opened = open_entries(
            [ConfigEntry(key="A", value="enc:1"), ConfigEntry(key="B", value="plain")],
            cipher,
        )

        assert entries_to_map(opened) == {"A": "1", "B": "plain"}


class TestInMemoryProjectStore:
    """Test cases for InMemoryProjectStore."""

    @pytest.mark.asyncio
    async def test_config_encrypted_at_rest(self, store):
        project = Project(name="demo", repo_url="https://x/y.git", owner_id="o1")
        await store.create_project(project, [ConfigEntry(key="TOKEN", value="secret")])

        assert store.stored_config(project.id)[0].value == "enc:terces"
        assert await store.get_config(project.id) == [ConfigEntry(key="TOKEN", value="secret")]

    @pytest.mark.asyncio
    async def test_update_status_keeps_url(self, store):
        """Test an empty URL leaves the stored URL alone."""
        project = Project(name="demo", repo_url="https://x/y.git", owner_id="o1")
        await store.create_project(project, [])

        await store.update_status(project.id, ProjectStatus.RUNNING, "https://a")
        await store.update_status(project.id, ProjectStatus.STOPPED)

        stored = await store.get_project(project.id)
        assert stored.status is ProjectStatus.STOPPED
        assert stored.deploy_url == "https://a"

    @pytest.mark.asyncio
    async def test_update_status_unknown_project(self, store):
        await store.update_status("gone", ProjectStatus.RUNNING)

        with pytest.raises(NotFoundError):
            await store.get_project("gone")

    @pytest.mark.asyncio
    async def test_delete_environment_detaches_projects(self, store):
        environment = await store.create_environment(
            Environment(name="shared", owner_id="o1", variables=[ConfigEntry(key="A", value="1")])
        )
        project = Project(
            name="demo", repo_url="https://x/y.git", owner_id="o1", environment_ids=[environment.id]
        )
        await store.create_project(project, [])

        await store.delete_environment(environment.id)

        assert (await store.get_project(project.id)).environment_ids == []
        with pytest.raises(NotFoundError):
            await store.get_environment(environment.id)

    @pytest.mark.asyncio
    async def test_without_cipher(self):
        store = InMemoryProjectStore()
        project = Project(name="demo", repo_url="https://x/y.git", owner_id="o1")
        await store.create_project(project, [ConfigEntry(key="A", value="1")])

        assert store.stored_config(project.id) == [ConfigEntry(key="A", value="1")]

    def test_timestamps_are_timezone_aware(self):
        project = Project(name="demo", repo_url="https://x/y.git", owner_id="o1")

        assert project.created_at.tzinfo is not None
        assert project.updated_at.utcoffset().total_seconds() == 0

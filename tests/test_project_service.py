"""Tests for project grouping, the project store and project-wide actions."""

import pytest

from docker_remote.core.exceptions import NotFoundError, ValidationError
from docker_remote.core.parsers import parse_inventory
from docker_remote.models import Project
from docker_remote.services.container import ContainerService
from docker_remote.services.project import (
    InMemoryProjectStore,
    ProjectService,
    group_auto_projects,
)
from tests.fakes import inventory_line

INVENTORY = "\n".join(
    [
        inventory_line("a1", "shop-web-1", project="shop"),
        inventory_line("a2", "shop-db-1", project="shop"),
        inventory_line("b1", "blog-app-1", project="blog", state="exited"),
        inventory_line("c1", "loose"),
    ]
)


@pytest.fixture
def service(executor) -> ProjectService:
    executor.on("docker ps -a", stdout=INVENTORY)
    return ProjectService(ContainerService(executor))


class TestGrouping:
    def test_group_auto_projects(self):
        projects = group_auto_projects(parse_inventory(INVENTORY))

        assert [(p.id, p.name, p.container_ids) for p in projects] == [
            ("auto:shop", "shop", ["a1", "a2"]),
            ("auto:blog", "blog", ["b1"]),
            ("auto:standalone", "Standalone Containers", ["c1"]),
        ]
        assert all(p.source == "auto" for p in projects)
        assert projects[0].compose_project == "shop"
        assert projects[2].compose_project is None

    def test_without_standalone(self):
        projects = group_auto_projects(parse_inventory(INVENTORY), include_standalone=False)

        assert [p.id for p in projects] == ["auto:shop", "auto:blog"]

    def test_empty_inventory(self):
        assert group_auto_projects([]) == []


class TestInMemoryProjectStore:
    @pytest.mark.asyncio
    async def test_crud(self):
        store = InMemoryProjectStore()

        created = await store.create("  Frontend ", ["a1"])
        assert created.name == "Frontend"
        assert created.source == "manual"

        updated = await store.update(created.id, container_ids=["a1", "b1"])
        assert updated.container_ids == ["a1", "b1"]
        assert updated.name == "Frontend"

        assert [p.id for p in await store.list()] == [created.id]

        await store.remove(created.id)
        assert await store.list() == []

    @pytest.mark.asyncio
    async def test_create_requires_name(self):
        with pytest.raises(ValidationError):
            await InMemoryProjectStore().create("  ", [])

    @pytest.mark.asyncio
    async def test_update_missing(self):
        with pytest.raises(NotFoundError):
            await InMemoryProjectStore().update("nope", name="x")

    @pytest.mark.asyncio
    async def test_list_returns_copies(self):
        store = InMemoryProjectStore()
        created = await store.create("x", ["a1"])

        listed = await store.list()
        listed[0].container_ids.append("zzz")

        assert (await store.list())[0].container_ids == created.container_ids


class TestProjectService:
    @pytest.mark.asyncio
    async def test_list_projects(self, service):
        await service.store.create("Frontends", ["a1", "c1", "gone"])

        listing = await service.list_projects()

        assert len(listing.manual_projects) == 1
        manual = listing.manual_projects[0]
        assert [c.id for c in manual.containers] == ["a1", "c1"]
        assert [p.project.id for p in listing.auto_projects] == [
            "auto:shop",
            "auto:blog",
            "auto:standalone",
        ]

    @pytest.mark.asyncio
    async def test_get_project(self, service):
        resolved = await service.get_project("auto:shop")

        assert [c.name for c in resolved.containers] == ["shop-web-1", "shop-db-1"]

    @pytest.mark.asyncio
    async def test_get_missing_project(self, service):
        with pytest.raises(NotFoundError):
            await service.get_project("auto:ghost")

    @pytest.mark.asyncio
    async def test_start_project(self, executor, service):
        results = await service.start_project("auto:shop")

        assert [(r.container_id, r.action, r.success) for r in results] == [
            ("a1", "start", True),
            ("a2", "start", True),
        ]
        assert sorted(executor.commands_matching("docker start")) == [
            "docker start a1",
            "docker start a2",
        ]

    @pytest.mark.asyncio
    async def test_one_failure_does_not_abort_others(self, executor, service):
        executor.on("docker stop a1", stderr="Error response from daemon", exit_status=1)

        results = await service.stop_project("auto:shop")

        assert [r.success for r in results] == [False, True]
        assert results[0].error == "Error response from daemon"
        assert "docker stop a2" in executor.commands

    @pytest.mark.asyncio
    async def test_restart_manual_project(self, executor):
        executor.on("docker ps -a", stdout=INVENTORY)
        store = InMemoryProjectStore(
            [Project(id="p1", name="Mixed", container_ids=["b1", "c1"], source="manual")]
        )
        service = ProjectService(ContainerService(executor), store)

        results = await service.restart_project("p1")

        assert [r.container_id for r in results] == ["b1", "c1"]
        assert all(r.success for r in results)

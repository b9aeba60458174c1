"""Tests for the Loader: eager activation, lazy deferral and route triggers."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

import pytest

from modcore.errors import CircularDependencyError, MissingDependencyError
from modcore.loader import CapabilityContainer, Loader, ModuleState, ProviderContainer
from modcore.registry import ModuleDescriptor, Registry
from modcore.version import Version


@pytest.fixture
def site(write_module: Callable[..., Path], make_registry: Callable[..., Registry]) -> Registry:
    write_module("core", providers=["core.Database", "core.Cache"], commands=["core:migrate"])
    write_module("users", dependencies={"core": "*"}, providers=["users.UserService"])
    write_module(
        "admin",
        dependencies={"users": "*"},
        providers=["admin.Dashboard"],
        commands=["admin:create-user"],
        lazy=True,
        route_prefixes=["/admin"],
    )
    write_module("reports", dependencies={"core": "*"}, lazy=True, route_prefixes=["/reports/"])
    return make_registry()


class TestEagerLoading:
    def test_loads_eager_modules_in_order(self, site: Registry) -> None:
        loader = Loader(site)
        loader.load()
        assert loader.loaded == ["core", "users"]
        assert loader.container.providers == ["core.Database", "core.Cache", "users.UserService"]

    def test_lazy_modules_deferred_with_commands(self, site: Registry) -> None:
        loader = Loader(site)
        loader.load()
        assert sorted(loader.deferred) == ["admin", "reports"]
        assert loader.commands == ["core:migrate", "admin:create-user"]
        assert loader.route_map == {"/admin": "admin", "/reports/": "reports"}
        assert "admin.Dashboard" not in loader.container.providers

    def test_load_is_idempotent(self, site: Registry) -> None:
        loader = Loader(site)
        loader.load()
        loader.load()
        assert loader.container.providers.count("core.Database") == 1
        assert loader.commands.count("core:migrate") == 1

    def test_states(self, site: Registry) -> None:
        loader = Loader(site)
        assert loader.state("core") is ModuleState.UNLOADED
        loader.load()
        assert loader.state("core") is ModuleState.LOADED
        assert loader.state("admin") is ModuleState.DEFERRED
        assert loader.state("nope") is ModuleState.UNLOADED

    def test_eager_module_activates_lazy_dependency(
        self, write_module: Callable[..., Path], make_registry: Callable[..., Registry]
    ) -> None:
        write_module("theme", lazy=True, route_prefixes=["/theme"], providers=["theme.Renderer"])
        write_module("pages", dependencies={"theme": "*"})
        loader = Loader(make_registry())
        loader.load()
        assert loader.loaded == ["theme", "pages"]
        assert loader.deferred == []

    def test_disabled_modules_untouched(
        self, write_module: Callable[..., Path], make_registry: Callable[..., Registry]
    ) -> None:
        write_module("core")
        write_module("old", enabled=False, providers=["old.Thing"])
        loader = Loader(make_registry())
        loader.load()
        assert loader.loaded == ["core"]
        assert loader.state("old") is ModuleState.UNLOADED


class TestLoadModule:
    def test_twice_registers_providers_once(self, site: Registry) -> None:
        loader = Loader(site)
        core = site.get("core")
        loader.load_module(core)
        loader.load_module(core)
        assert loader.container.providers_for("core") == ["core.Database", "core.Cache"]

    def test_dependencies_activated_first(self, site: Registry) -> None:
        loader = Loader(site)
        loader.load_module(site.get("admin"))
        assert loader.loaded == ["core", "users", "admin"]
        assert [owner for _, owner in loader.container.registrations] == ["core", "core", "users", "admin"]

    def test_diamond_activates_shared_dependency_once(
        self, write_module: Callable[..., Path], make_registry: Callable[..., Registry]
    ) -> None:
        write_module("base", providers=["base.P"])
        write_module("left", dependencies={"base": "*"})
        write_module("right", dependencies={"base": "*"})
        write_module("top", dependencies={"left": "*", "right": "*"})
        registry = make_registry()
        loader = Loader(registry)
        loader.load_module(registry.get("top"))
        assert loader.loaded == ["base", "left", "right", "top"]
        assert loader.container.providers == ["base.P"]

    def test_present_optional_dependency_activated(
        self, write_module: Callable[..., Path], make_registry: Callable[..., Registry]
    ) -> None:
        write_module("search", providers=["search.Index"])
        write_module("blog", optional_dependencies={"search": "*", "comments": "*"})
        registry = make_registry()
        loader = Loader(registry)
        loader.load_module(registry.get("blog"))
        assert loader.loaded == ["search", "blog"]

    @pytest.mark.parametrize("entry", [None, "a", "b"])
    def test_optional_back_edge_does_not_reorder(
        self, write_module: Callable[..., Path], make_registry: Callable[..., Registry], entry: str | None
    ) -> None:
        write_module("a", dependencies={"b": "*"}, providers=["A"])
        write_module("b", optional_dependencies={"a": "*"}, providers=["B"])
        registry = make_registry()
        loader = Loader(registry)
        if entry is None:
            loader.load()
        else:
            loader.load_module(registry.get(entry))
        assert registry.load_order == ["b", "a"]
        assert loader.loaded[0] == "b"
        assert loader.container.providers[0] == "B"

    def test_optional_back_edge_leaves_dependent_unloaded(
        self, write_module: Callable[..., Path], make_registry: Callable[..., Registry]
    ) -> None:
        write_module("a", dependencies={"b": "*"})
        write_module("b", optional_dependencies={"a": "*"})
        registry = make_registry()
        loader = Loader(registry)
        loader.load_module(registry.get("b"))
        assert loader.loaded == ["b"]
        assert loader.state("a") is ModuleState.UNLOADED

    def test_required_dependency_still_activating(self, site: Registry, tmp_path: Path) -> None:
        loader = Loader(site)
        core = ModuleDescriptor(
            module_id="core", version=Version(1, 0, 0), location=tmp_path, dependencies={"users": "*"}
        )
        with pytest.raises(CircularDependencyError) as exc_info:
            loader.load_module(core)
        assert (exc_info.value.module_a, exc_info.value.module_b) == ("users", "core")
        assert loader.loaded == []
        assert loader.container.providers == []

    def test_missing_required_dependency(self, make_registry: Callable[..., Registry], tmp_path: Path) -> None:
        loader = Loader(make_registry())
        orphan = ModuleDescriptor(
            module_id="orphan", version=Version(1, 0, 0), location=tmp_path, dependencies={"ghost": "*"}
        )
        with pytest.raises(MissingDependencyError):
            loader.load_module(orphan)
        assert loader.state("orphan") is ModuleState.UNLOADED


class TestRoutes:
    def test_matching_route_loads_deferred(self, site: Registry) -> None:
        loader = Loader(site)
        loader.load()
        assert loader.load_for_route("/admin/users") == ["admin"]
        assert loader.state("admin") is ModuleState.LOADED
        assert "admin" not in loader.deferred
        assert "admin.Dashboard" in loader.container.providers

    def test_non_matching_route(self, site: Registry) -> None:
        loader = Loader(site)
        loader.load()
        assert loader.load_for_route("/public") == []
        assert loader.state("admin") is ModuleState.DEFERRED

    def test_prefix_without_trailing_slash(self, site: Registry) -> None:
        loader = Loader(site)
        loader.load()
        assert loader.load_for_route("/reports") == ["reports"]

    def test_already_loaded_route_is_not_reported(self, site: Registry) -> None:
        loader = Loader(site)
        loader.load()
        loader.load_for_route("/admin")
        assert loader.load_for_route("/admin/settings") == []

    def test_commands_not_duplicated_on_activation(self, site: Registry) -> None:
        loader = Loader(site)
        loader.load()
        loader.load_for_route("/admin")
        assert loader.commands.count("admin:create-user") == 1

    def test_route_prefix_clash_keeps_first(
        self,
        write_module: Callable[..., Path],
        make_registry: Callable[..., Registry],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        write_module("alpha", lazy=True, route_prefixes=["/shared"])
        write_module("beta", lazy=True, route_prefixes=["/shared"])
        loader = Loader(make_registry())
        with caplog.at_level(logging.WARNING, logger="modcore.loader"):
            loader.load()
        assert loader.route_map == {"/shared": "alpha"}
        assert "already claimed by 'alpha'" in caplog.text


class TestLoadDeferred:
    def test_unknown_module(self, site: Registry) -> None:
        loader = Loader(site)
        loader.load()
        assert loader.load_deferred("nope") is False

    def test_eager_module_is_not_deferred(self, site: Registry) -> None:
        loader = Loader(site)
        assert loader.load_deferred("core") is False

    def test_already_loaded(self, site: Registry) -> None:
        loader = Loader(site)
        loader.load()
        assert loader.load_deferred("core") is True

    def test_activates_deferred(self, site: Registry) -> None:
        loader = Loader(site)
        loader.load()
        assert loader.load_deferred("reports") is True
        assert loader.state("reports") is ModuleState.LOADED


class TestContainer:
    def test_provider_container_satisfies_protocol(self) -> None:
        assert isinstance(ProviderContainer(), CapabilityContainer)

    def test_custom_container(self, site: Registry) -> None:
        class Recorder:
            def __init__(self) -> None:
                self.calls: list[tuple[str, str]] = []

            def register_provider(self, provider: str, module_id: str) -> None:
                self.calls.append((provider, module_id))

        recorder = Recorder()
        Loader(site, container=recorder).load()
        assert recorder.calls[0] == ("core.Database", "core")
        assert len(recorder.calls) == 3

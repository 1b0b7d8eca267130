import logging
from typing import Annotated, Any

import pytest

from wirebox.annotations import (
    Inject,
    Lazy,
    LazyAttribute,
    MetadataStore,
    injectable,
)
from wirebox.domain import Dependency, LazyDependency
from wirebox.errors import MissingMetadataError
from wirebox.lazy import LazyService


class Logger:
    pass


class Cache:
    pass


@pytest.fixture
def store() -> MetadataStore:
    return MetadataStore()


def test_records_dependencies_in_declaration_order(store):
    @injectable(store=store)
    class Service:
        logger: Annotated[Logger, Inject()]
        mailer: Annotated[object, Inject("mailer")]
        cache: Annotated[Cache, Lazy()]
        plain: int

    assert store.dependencies(Service) == [
        Dependency("logger", Logger),
        Dependency("mailer", "mailer"),
    ]
    assert store.lazy_dependencies(Service) == [LazyDependency("cache", Cache)]


def test_bare_marker_class_is_accepted(store):
    @injectable(store=store)
    class Service:
        logger: Annotated[Logger, Inject]

    assert store.dependencies(Service) == [Dependency("logger", Logger)]


def test_explicit_identifier_overrides_declared_type(store):
    class FileCache(Cache):
        pass

    @injectable(store=store)
    class Service:
        cache: Annotated[Cache, Lazy(FileCache)]
        logger: Annotated[Logger, Inject(Logger)]

    assert store.lazy_dependencies(Service) == [LazyDependency("cache", FileCache)]
    assert store.dependencies(Service) == [Dependency("logger", Logger)]


def test_inject_without_usable_type_raises(store):
    with pytest.raises(MissingMetadataError, match='Inject\\(\\) on "thing" in Service'):

        @injectable(store=store)
        class Service:
            thing: Annotated[Any, Inject()]


def test_unevaluable_annotation_raises(store):
    class Service:
        thing: "Annotated[Missing, Inject()]"  # noqa: F821

    with pytest.raises(MissingMetadataError, match="Unable to evaluate the annotations of Service"):
        injectable(Service, store=store)


def test_lazy_without_usable_type_warns(store, caplog):
    with caplog.at_level(logging.WARNING, logger="wirebox.annotations"):

        @injectable(store=store)
        class Service:
            thing: Annotated[object, Lazy()]

    assert store.lazy_dependencies(Service) == [LazyDependency("thing", None)]
    assert 'Lazy() on "thing" in Service' in caplog.text


def test_lazy_service_declared_type_records_no_target(store, caplog):
    with caplog.at_level(logging.WARNING, logger="wirebox.annotations"):

        @injectable(store=store)
        class Service:
            cache: Annotated[LazyService[Cache], Lazy()]

    assert store.lazy_dependencies(Service) == [LazyDependency("cache", None)]
    assert not isinstance(Service.__dict__.get("cache"), LazyAttribute)
    assert caplog.text == ""


def test_lazy_none_identifier_raises():
    with pytest.raises(MissingMetadataError, match="the identifier argument is None"):
        Lazy(None)


def test_lazy_target_installs_descriptor(store):
    class Service:
        pass

    store.add_lazy_dependency(Service, "cache", Cache)

    assert isinstance(Service.__dict__["cache"], LazyAttribute)


def test_lazy_attribute_keeps_class_default(store):
    class Service:
        cache = None

    store.add_lazy_dependency(Service, "cache", Cache)

    assert Service().cache is None


def test_lazy_attribute_stores_assigned_values(store):
    class Service:
        pass

    store.add_lazy_dependency(Service, "cache", Cache)
    service = Service()
    cache = Cache()
    service.cache = cache

    assert service.cache is cache
    with pytest.raises(AttributeError):
        Service().cache


def test_base_declarations_come_first(store):
    @injectable(store=store)
    class Base:
        logger: Annotated[Logger, Inject()]

    @injectable(store=store)
    class Child(Base):
        cache: Annotated[Cache, Inject()]

    assert [d.property_name for d in store.dependencies(Child)] == ["logger", "cache"]
    assert [d.property_name for d in store.dependencies(Base)] == ["logger"]

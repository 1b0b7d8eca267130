import textwrap

import pytest

from wirebox.concrete import ConcreteClassResolver, has_concrete_class_config
from wirebox.config import Config
from wirebox.errors import ConfigurationError
from wirebox.registry import ServiceRegistry


class Storage:
    concrete_class_config_path = "settings.storage.driver"
    concrete_class_name = "ConcreteStorage"


class LocalStorage:
    concrete_class_config_path = "settings.storage.driver"
    concrete_class_name = "ConcreteStorage"
    default_concrete_class_path = "wirebox_test_local_storage"


@pytest.fixture
def build_dir(tmp_path):
    build = tmp_path / "build"
    build.mkdir()
    return build


@pytest.fixture
def write_module(tmp_path, monkeypatch):
    monkeypatch.syspath_prepend(str(tmp_path))

    def write(path, source):
        target = tmp_path / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(textwrap.dedent(source))
        return target

    return write


def resolver_for(settings, build_dir) -> ConcreteClassResolver:
    return ConcreteClassResolver(Config(settings), build_dir)


def test_relative_path_is_rooted_under_build_dir(build_dir, write_module):
    write_module("build/s3_storage.py", """
        class ConcreteStorage:
            kind = "s3"
    """)
    resolver = resolver_for({"settings": {"storage": {"driver": "./s3_storage.py"}}}, build_dir)

    concrete = resolver.resolve(Storage)

    assert concrete.__name__ == "ConcreteStorage"
    assert concrete.kind == "s3"
    assert resolver.resolve(Storage) is concrete


def test_registry_returns_instance_of_concrete_class(build_dir, write_module):
    write_module("build/memory_storage.py", """
        class ConcreteStorage:
            kind = "memory"
    """)
    registry = ServiceRegistry(
        concrete_class_resolver=resolver_for(
            {"settings": {"storage": {"driver": "./memory_storage"}}}, build_dir
        )
    )

    storage = registry.get(Storage)

    assert storage.kind == "memory"
    assert registry.get(Storage) is storage


def test_local_uses_default_path(build_dir, write_module):
    write_module("wirebox_test_local_storage.py", """
        class ConcreteStorage:
            kind = "local"
    """)

    assert resolver_for({}, build_dir).resolve(LocalStorage).kind == "local"
    assert resolver_for(
        {"settings": {"storage": {"driver": "local"}}}, build_dir
    ).resolve(LocalStorage).kind == "local"


def test_local_without_default_path_raises(build_dir):
    resolver = resolver_for({"settings": {"storage": {"driver": "local"}}}, build_dir)

    with pytest.raises(
        ConfigurationError,
        match='Storage does not support the "local" option in settings.storage.driver',
    ):
        resolver.resolve(Storage)


def test_missing_configuration_raises(build_dir):
    with pytest.raises(ConfigurationError, match='"settings.storage.driver"'):
        resolver_for({}, build_dir).resolve(Storage)


def test_module_not_found_raises_configuration_error(build_dir):
    resolver = resolver_for({"settings": {"storage": {"driver": "./missing.py"}}}, build_dir)

    with pytest.raises(
        ConfigurationError, match="The package or file ./missing.py was not found"
    ):
        resolver.resolve(Storage)


def test_missing_package_raises_configuration_error(build_dir):
    resolver = resolver_for(
        {"settings": {"storage": {"driver": "wirebox_test_no_such_package.drivers"}}}, build_dir
    )

    with pytest.raises(ConfigurationError, match="wirebox_test_no_such_package.drivers was not found"):
        resolver.resolve(Storage)


def test_missing_import_inside_module_is_reraised(build_dir, write_module):
    write_module("wirebox_test_broken_import.py", """
        import wirebox_test_not_installed
    """)
    resolver = resolver_for(
        {"settings": {"storage": {"driver": "wirebox_test_broken_import"}}}, build_dir
    )

    with pytest.raises(ModuleNotFoundError, match="wirebox_test_not_installed"):
        resolver.resolve(Storage)


def test_other_load_errors_are_reraised(build_dir, write_module):
    write_module("build/exploding.py", """
        raise RuntimeError("boom")
    """)
    resolver = resolver_for({"settings": {"storage": {"driver": "./exploding.py"}}}, build_dir)

    with pytest.raises(RuntimeError, match="boom"):
        resolver.resolve(Storage)


def test_missing_class_raises(build_dir, write_module):
    write_module("build/empty_storage.py", """
        OTHER = 1
    """)
    resolver = resolver_for({"settings": {"storage": {"driver": "./empty_storage.py"}}}, build_dir)

    with pytest.raises(ConfigurationError, match="class ConcreteStorage not found"):
        resolver.resolve(Storage)


def test_export_that_is_not_a_class_raises(build_dir, write_module):
    write_module("build/function_storage.py", """
        def ConcreteStorage():
            pass
    """)
    resolver = resolver_for(
        {"settings": {"storage": {"driver": "./function_storage.py"}}}, build_dir
    )

    with pytest.raises(ConfigurationError, match="ConcreteStorage is not a class"):
        resolver.resolve(Storage)


def test_missing_class_name_property_raises(build_dir):
    class Incomplete:
        concrete_class_config_path = "settings.storage.driver"

    with pytest.raises(ConfigurationError, match="Incomplete.concrete_class_name is missing"):
        resolver_for({}, build_dir).resolve(Incomplete)


def test_wrongly_typed_property_raises(build_dir):
    class Misconfigured:
        concrete_class_config_path = 42
        concrete_class_name = "ConcreteStorage"

    with pytest.raises(
        ConfigurationError, match="Misconfigured.concrete_class_config_path should be a str"
    ):
        resolver_for({}, build_dir).resolve(Misconfigured)


def test_marker_must_be_declared_on_the_class_itself():
    class S3Storage(Storage):
        pass

    assert has_concrete_class_config(Storage)
    assert not has_concrete_class_config(S3Storage)
    assert not has_concrete_class_config("Storage")
    assert isinstance(ServiceRegistry().get(S3Storage), S3Storage)

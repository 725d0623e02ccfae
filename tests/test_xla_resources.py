import os

import pytest

from xla.xla_resources import Resource, ResourceError, ResourceNotFound, ResourceTable, parse_reference


@pytest.fixture
def resource_dir(tmp_path):
    (tmp_path / "profiles").mkdir()
    (tmp_path / "profiles" / "general.yaml").write_text("prompt: 'You are {{role}}.'\nmodel: small\n", encoding="utf-8")
    (tmp_path / "profiles" / ".hidden").write_text("ignored", encoding="utf-8")
    (tmp_path / "prompts").mkdir()
    (tmp_path / "prompts" / "greet.TXT").write_text("Hello {{name}}!", encoding="utf-8")
    (tmp_path / "prompts" / "meta.json").write_text('{"template": "hi"}', encoding="utf-8")
    (tmp_path / "README").write_text("not a type directory", encoding="utf-8")
    return tmp_path


def test_scan_builds_type_and_name_index(resource_dir):
    table = ResourceTable(str(resource_dir))
    assert sorted(table.types) == ["profiles", "prompts"]
    assert sorted(table.types["profiles"]) == ["general"]
    general = table.lookup("profiles", "general")
    assert general.kind == "yaml"
    assert general.type == "profiles"
    assert os.path.isabs(general.file_path)
    assert general.reference == "@profiles/general"


def test_extension_is_lowercased(resource_dir):
    table = ResourceTable(str(resource_dir))
    assert table.lookup("prompts", "greet").kind == "txt"


def test_resolve_reference(resource_dir):
    table = ResourceTable(str(resource_dir))
    assert table.resolve("@prompts/meta").kind == "json"
    assert table.resolve("@prompts/greet").name == "greet"


@pytest.mark.parametrize("reference, key, message", [
    ("@nothing/here", "nothing/here", "unknown resource type 'nothing'"),
    ("@profiles/absent", "profiles/absent", "no resource named 'absent' of type 'profiles'"),
])
def test_missing_resources(resource_dir, reference, key, message):
    table = ResourceTable(str(resource_dir))
    with pytest.raises(ResourceNotFound) as excinfo:
        table.resolve(reference)
    assert excinfo.value.key == key
    assert str(excinfo.value) == message


@pytest.mark.parametrize("reference", ["profiles/general", "@profiles", "@/x", "@x/"])
def test_malformed_references(reference):
    with pytest.raises(ResourceError):
        parse_reference(reference)


def test_parse_reference_keeps_nested_names():
    assert parse_reference("@docs/guides/intro") == ("docs", "guides/intro")


def test_missing_root_directory(tmp_path):
    with pytest.raises(ResourceError):
        ResourceTable(str(tmp_path / "nope"))


def test_load_by_kind(resource_dir):
    table = ResourceTable(str(resource_dir))
    assert table.resolve("@profiles/general").load() == {"prompt": "You are {{role}}.", "model": "small"}
    assert table.resolve("@prompts/meta").load() == {"template": "hi"}
    assert table.resolve("@prompts/greet").load() == "Hello {{name}}!"


def test_from_mapping():
    res = Resource("a", "t", "/x/a.txt", "txt")
    table = ResourceTable.from_mapping({"t": {"a": res}})
    assert table.resolve("@t/a") == res
    assert table.root_dir is None
    assert "t=1" in repr(table)

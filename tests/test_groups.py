import json
from pathlib import Path

import pytest

from plana.groups import GroupRegistry, is_group_chat_type


@pytest.mark.anyio
async def test_record_group_writes_sorted_file(tmp_path: Path) -> None:
    path = tmp_path / "groups.json"
    registry = GroupRegistry(path)

    assert await registry.record_group(-100200) is True
    assert await registry.record_group(-100100) is True
    assert await registry.record_group(-100300) is True

    assert json.loads(path.read_text(encoding="utf-8")) == [-100300, -100200, -100100]
    assert await registry.list_groups() == {-100100, -100200, -100300}


@pytest.mark.anyio
async def test_known_group_does_not_write(tmp_path: Path) -> None:
    path = tmp_path / "groups.json"
    registry = GroupRegistry(path)
    await registry.record_group(-1)
    path.write_text("[-1, 12345]", encoding="utf-8")

    assert await registry.record_group(-1) is False
    assert path.read_text(encoding="utf-8") == "[-1, 12345]"


@pytest.mark.anyio
async def test_loads_existing_file(tmp_path: Path) -> None:
    path = tmp_path / "groups.json"
    path.write_text("[3, 1, 3, 2]", encoding="utf-8")

    registry = GroupRegistry(path)

    assert await registry.list_groups() == {1, 2, 3}
    assert await registry.record_group(4) is True
    assert json.loads(path.read_text(encoding="utf-8")) == [1, 2, 3, 4]


@pytest.mark.anyio
async def test_corrupt_file_loads_empty(tmp_path: Path) -> None:
    path = tmp_path / "groups.json"
    path.write_text('{"groups": [1]}', encoding="utf-8")

    registry = GroupRegistry(path)

    assert await registry.list_groups() == set()


@pytest.mark.anyio
async def test_list_groups_returns_copy(tmp_path: Path) -> None:
    registry = GroupRegistry(tmp_path / "groups.json")
    await registry.record_group(5)

    groups = await registry.list_groups()
    groups.add(6)

    assert await registry.list_groups() == {5}


@pytest.mark.anyio
async def test_unwritable_path_keeps_memory(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    registry = GroupRegistry(blocker / "groups.json")

    assert await registry.record_group(8) is True
    assert await registry.list_groups() == {8}


@pytest.mark.parametrize(
    ("chat_type", "expected"),
    [("group", True), ("supergroup", True), ("private", False), ("channel", False), (None, False)],
)
def test_is_group_chat_type(chat_type, expected: bool) -> None:
    assert is_group_chat_type(chat_type) is expected

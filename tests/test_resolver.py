from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

from qcs import resolver
from qcs.content import BinaryImageEntry
from qcs.errors import ExternalCommandFailed
from qcs.resolver import (
    BinaryImageFileProvider,
    BinaryImageFileProviderChain,
    DSYMBinaryImageFileProvider,
    SystemBinaryImageFileProvider,
    read_build_uuid,
)

UUID = "5e2d1a7c0b8e3f4a9c612d7e8b0a0c1f"
OTHER_UUID = "0a1b2c3d4e5f60718293a4b5c6d7e8f9"

OTOOL_OUTPUT = """\
Load command 8
     cmd LC_UUID
 cmdsize 24
    uuid 5E2D1A7C-0B8E-3F4A-9C61-2D7E8B0A0C1F
Load command 9
"""


def _entry(name: str = "MyApp", uuid: str = UUID, path: str = "/var/containers/MyApp.app/MyApp") -> BinaryImageEntry:
    return BinaryImageEntry(
        load_address="0x100000000",
        end_address="0x100007fff",
        binary_name=name,
        architecture="arm64",
        build_uuid=uuid,
        binary_path=path,
    )


class FakeUUIDReader:
    """Stands in for read_build_uuid: returns a UUID per file name."""

    def __init__(self, uuids: Dict[str, Optional[str]]) -> None:
        self.uuids = uuids
        self.calls: List[Tuple[Path, str, str]] = []

    def __call__(self, file: Path, architecture: str, xcrun: str = "xcrun") -> Optional[str]:
        self.calls.append((file, architecture, xcrun))
        return self.uuids.get(file.name)


def _make_dsym(root: Path, *names: str) -> Path:
    dsym = root / "MyApp.app.dSYM"
    dwarf = dsym / "Contents" / "Resources" / "DWARF"
    dwarf.mkdir(parents=True)
    for name in names:
        (dwarf / name).write_bytes(b"\xcf\xfa\xed\xfe")
    return dsym


# ---------------------------------------------------------------------------
# read_build_uuid
# ---------------------------------------------------------------------------

def test_read_build_uuid_parses_otool_output(monkeypatch: pytest.MonkeyPatch) -> None:
    commands = []

    def fake_run(cmd, **kwargs):
        commands.append(list(cmd))
        return subprocess.CompletedProcess(cmd, 0, OTOOL_OUTPUT, "")

    monkeypatch.setattr(resolver.subprocess, "run", fake_run)

    assert read_build_uuid(Path("/sym/MyApp"), "arm64") == UUID
    assert commands == [["xcrun", "otool", "-arch", "arm64", "-l", "/sym/MyApp"]]


def test_read_build_uuid_non_zero_exit_is_not_found(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(cmd, **kwargs):
        return subprocess.CompletedProcess(cmd, 1, "", "fatal error: no slice for arm64e")

    monkeypatch.setattr(resolver.subprocess, "run", fake_run)
    assert read_build_uuid(Path("/sym/MyApp"), "arm64e") is None


def test_read_build_uuid_without_uuid_line(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(cmd, **kwargs):
        return subprocess.CompletedProcess(cmd, 0, "Load command 0\n", "")

    monkeypatch.setattr(resolver.subprocess, "run", fake_run)
    assert read_build_uuid(Path("/sym/MyApp"), "arm64") is None


def test_read_build_uuid_missing_xcrun(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(cmd, **kwargs):
        raise FileNotFoundError(2, "No such file or directory", cmd[0])

    monkeypatch.setattr(resolver.subprocess, "run", fake_run)
    with pytest.raises(ExternalCommandFailed) as exc_info:
        read_build_uuid(Path("/sym/MyApp"), "arm64")
    assert exc_info.value.command == "otool"


# ---------------------------------------------------------------------------
# DSYMBinaryImageFileProvider
# ---------------------------------------------------------------------------

def test_dsym_provider_finds_matching_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    dsym = _make_dsym(tmp_path, "MyApp", "MyAppExtension", ".DS_Store")
    reader = FakeUUIDReader({"MyApp": UUID, "MyAppExtension": OTHER_UUID})
    monkeypatch.setattr(resolver, "read_build_uuid", reader)

    provider = DSYMBinaryImageFileProvider(dsym)

    assert [p.name for p in provider.binary_image_files] == ["MyApp", "MyAppExtension"]
    assert provider.provide_binary_image_file(_entry()) == dsym / "Contents" / "Resources" / "DWARF" / "MyApp"
    assert provider.provide_binary_image_file(_entry(name="Ext", uuid=OTHER_UUID)).name == "MyAppExtension"


def test_dsym_provider_compares_uuid_case_insensitively(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    dsym = _make_dsym(tmp_path, "MyApp")
    monkeypatch.setattr(resolver, "read_build_uuid", FakeUUIDReader({"MyApp": UUID}))

    provider = DSYMBinaryImageFileProvider(dsym)
    assert provider.provide_binary_image_file(_entry(uuid=UUID.upper())) is not None


def test_dsym_provider_caches_hits_and_misses(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    dsym = _make_dsym(tmp_path, "MyApp")
    reader = FakeUUIDReader({"MyApp": UUID})
    monkeypatch.setattr(resolver, "read_build_uuid", reader)
    provider = DSYMBinaryImageFileProvider(dsym)

    found = provider.provide_binary_image_file(_entry())
    assert provider.provide_binary_image_file(_entry()) == found
    assert len(reader.calls) == 1

    missing = _entry(name="Other", uuid=OTHER_UUID)
    assert provider.provide_binary_image_file(missing) is None
    assert provider.provide_binary_image_file(missing) is None
    assert len(reader.calls) == 2


def test_dsym_provider_without_dwarf_directory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    reader = FakeUUIDReader({})
    monkeypatch.setattr(resolver, "read_build_uuid", reader)

    provider = DSYMBinaryImageFileProvider(tmp_path / "Missing.dSYM")
    assert provider.binary_image_files == []
    assert provider.provide_binary_image_file(_entry()) is None
    assert reader.calls == []


def test_dsym_provider_passes_xcrun(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    dsym = _make_dsym(tmp_path, "MyApp")
    reader = FakeUUIDReader({"MyApp": UUID})
    monkeypatch.setattr(resolver, "read_build_uuid", reader)

    DSYMBinaryImageFileProvider(dsym, xcrun="/opt/xcrun").provide_binary_image_file(_entry())
    assert reader.calls[0][2] == "/opt/xcrun"


# ---------------------------------------------------------------------------
# SystemBinaryImageFileProvider
# ---------------------------------------------------------------------------

def test_system_provider_looks_up_binary_path_in_folders(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    first = tmp_path / "17.1 (21B80)" / "Symbols"
    second = tmp_path / "17.2 (21C62)" / "Symbols"
    for folder, content in ((first, b"old"), (second, b"new")):
        target = folder / "usr" / "lib" / "system" / "libsystem_kernel.dylib"
        target.parent.mkdir(parents=True)
        target.write_bytes(content)

    # Only the newer copy carries the wanted UUID
    checked: List[Path] = []

    def read(file: Path, architecture: str, xcrun: str = "xcrun") -> Optional[str]:
        checked.append(file)
        return UUID if file.read_bytes() == b"new" else OTHER_UUID

    monkeypatch.setattr(resolver, "read_build_uuid", read)

    provider = SystemBinaryImageFileProvider([first, second])
    entry = _entry(name="libsystem_kernel.dylib", path="/usr/lib/system/libsystem_kernel.dylib")
    expected = second / "usr" / "lib" / "system" / "libsystem_kernel.dylib"

    assert provider.provide_binary_image_file(entry) == expected
    assert checked == [first / "usr" / "lib" / "system" / "libsystem_kernel.dylib", expected]


def test_system_provider_skips_missing_files(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    reader = FakeUUIDReader({})
    monkeypatch.setattr(resolver, "read_build_uuid", reader)

    provider = SystemBinaryImageFileProvider([tmp_path])
    assert provider.provide_binary_image_file(_entry(path="/usr/lib/libnothing.dylib")) is None
    assert reader.calls == []


def test_system_provider_default_folders(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "17.2 (21C62)").mkdir()
    (tmp_path / "16.4 (20E247)").mkdir()
    (tmp_path / ".hidden").mkdir()
    monkeypatch.setattr(resolver, "DEVICE_SUPPORT_DIR", tmp_path)

    provider = SystemBinaryImageFileProvider()
    assert provider.folders == [
        tmp_path / "16.4 (20E247)" / "Symbols",
        tmp_path / "17.2 (21C62)" / "Symbols",
    ]


def test_default_folders_without_device_support(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(resolver, "DEVICE_SUPPORT_DIR", tmp_path / "nope")
    assert resolver.default_device_support_folders() == []


# ---------------------------------------------------------------------------
# BinaryImageFileProviderChain
# ---------------------------------------------------------------------------

class StaticProvider(BinaryImageFileProvider):
    def __init__(self, file: Optional[Path]) -> None:
        self.file = file
        self.asked = 0

    def provide_binary_image_file(self, entry: BinaryImageEntry) -> Optional[Path]:
        self.asked += 1
        return self.file


def test_chain_returns_first_hit() -> None:
    miss = StaticProvider(None)
    hit = StaticProvider(Path("/sym/first"))
    later = StaticProvider(Path("/sym/second"))

    chain = BinaryImageFileProviderChain([miss, hit, later])

    assert chain.provide_binary_image_file(_entry()) == Path("/sym/first")
    assert (miss.asked, hit.asked, later.asked) == (1, 1, 0)


def test_empty_chain() -> None:
    assert BinaryImageFileProviderChain([]).provide_binary_image_file(_entry()) is None

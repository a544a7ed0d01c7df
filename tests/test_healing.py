from __future__ import annotations

import asyncio

from release_sync.diff import DiffRecord, FileItem
from release_sync.healing import compute_fix_set


def item(name: str) -> FileItem:
    return FileItem(name, f"https://x/{name}", f"https://x/{name}")


def probe_for(present: set[str]):
    probed: list[str] = []

    async def probe(path: str) -> bool:
        probed.append(path)
        await asyncio.sleep(0)
        return path in present

    probe.probed = probed  # type: ignore[attr-defined]
    return probe


async def test_missing_file_is_scheduled_for_fix():
    diff = DiffRecord(passed_modify={"v1": [item("x.bin")]})

    fix = await compute_fix_set(diff, probe_for(set()))

    assert fix == {"v1": [item("x.bin")]}


async def test_present_file_is_not_fixed():
    diff = DiffRecord(passed_modify={"v1": [item("x.bin")]})

    fix = await compute_fix_set(diff, probe_for({"v1/x.bin"}))

    assert fix == {}


async def test_already_scheduled_file_is_not_fixed_twice():
    diff = DiffRecord(
        add={"v1": [item("x.bin")]},
        passed_modify={"v1": [item("x.bin"), item("y.bin")]},
    )
    probe = probe_for(set())

    fix = await compute_fix_set(diff, probe)

    assert fix == {"v1": [item("y.bin")]}
    assert probe.probed == ["v1/y.bin"]


async def test_probes_respect_concurrency():
    in_flight = 0
    peak = 0

    async def probe(path: str) -> bool:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return False

    diff = DiffRecord(passed_modify={"v1": [item(f"{i}.bin") for i in range(6)]})

    fix = await compute_fix_set(diff, probe, concurrency=2)

    assert peak == 2
    assert [i.filename for i in fix["v1"]] == [f"{i}.bin" for i in range(6)]

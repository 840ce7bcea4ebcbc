from __future__ import annotations

from pathlib import Path

from reports_web.repositories.run_repository import RunFileRepository


def _make_artifact(base: Path, rel: str, data: bytes = b"Id\n1\n") -> Path:
    p = base / rel
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_bytes(data)
    return p


def test_resolve_relative_path_under_base(tmp_path: Path):
    expected = _make_artifact(tmp_path, "ws1/report7/run_1.csv")

    repo = RunFileRepository(artifacts_base=tmp_path)

    got = repo.resolve("ws1/report7/run_1.csv")
    assert got is not None
    assert got == expected.resolve()


def test_resolve_absolute_path_under_base(tmp_path: Path):
    expected = _make_artifact(tmp_path, "run_2.csv")

    repo = RunFileRepository(artifacts_base=tmp_path)

    assert repo.resolve(str(expected)) == expected.resolve()


def test_resolve_returns_none_for_blank_or_missing(tmp_path: Path):
    repo = RunFileRepository(artifacts_base=tmp_path)

    assert repo.resolve(None) is None
    assert repo.resolve("   ") is None
    assert repo.resolve("nope.csv") is None


def test_resolve_returns_none_for_directories(tmp_path: Path):
    (tmp_path / "a_dir").mkdir()

    repo = RunFileRepository(artifacts_base=tmp_path)

    assert repo.resolve("a_dir") is None


def test_resolve_rejects_paths_escaping_the_base(tmp_path: Path):
    base = tmp_path / "artifacts"
    base.mkdir()
    outside = _make_artifact(tmp_path, "outside.csv")

    repo = RunFileRepository(artifacts_base=base)

    assert repo.resolve("../outside.csv") is None
    assert repo.resolve(str(outside)) is None


def test_read_artifact_returns_bytes(tmp_path: Path):
    _make_artifact(tmp_path, "run.csv", b"Id\n9\n")

    repo = RunFileRepository(artifacts_base=tmp_path)

    assert repo.read_artifact("run.csv") == b"Id\n9\n"
    assert repo.read_artifact("missing.csv") is None

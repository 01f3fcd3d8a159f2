from __future__ import annotations

from pathlib import Path

import pytest

tomllib = pytest.importorskip("tomllib")

ROOT = Path(__file__).resolve().parent.parent


def test_project_metadata_points_at_real_files():
    project = tomllib.loads((ROOT / "pyproject.toml").read_text(encoding="utf-8"))["project"]

    assert project["name"] == "hostsmerge"
    readme = project.get("readme")
    if readme is not None:
        assert Path(readme).name.lower().startswith("readme")
        assert (ROOT / readme).is_file()
    assert project["scripts"]["hostsmerge"] == "hostsmerge.pipeline:main"

from __future__ import annotations

import json
from pathlib import Path
from typing import Any


def load_json_fixture(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def load_fixture(base_dir: Path, name: str) -> Any:
    return load_json_fixture(base_dir / name)


__all__ = ["load_fixture", "load_json_fixture"]

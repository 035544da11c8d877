from __future__ import annotations

from pathlib import Path
from typing import Dict, Mapping, Optional, Union

PathLike = Union[str, Path]

# Classes of the bundled Clash of Clans storage detector.
DEFAULT_CLASS_NAMES: Dict[int, str] = {
    0: "Elixir Storage",
    1: "Gold Storage",
}


def load_class_names(metadata_path: PathLike) -> Dict[int, str]:
    """
    Load class names from an Ultralytics-style `metadata.yaml`.

    Both mapping and list forms of `names:` are read:

        names:            names:
          0: person         - person
          1: bicycle        - bicycle

    Only this block is parsed, so no YAML dependency is needed.
    """

    names: Dict[int, str] = {}
    in_names = False
    next_list_id = 0

    with open(metadata_path, "r", encoding="utf-8") as f:
        for raw in f:
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            if line == "names:":
                in_names = True
                continue
            if not in_names:
                continue
            # A new top-level key ends the names block.
            if not raw[:1].isspace() and not line.startswith("-"):
                break

            if line.startswith("-"):
                names[next_list_id] = line[1:].strip().strip("'").strip('"')
                next_list_id += 1
                continue

            # Parse "id: label"
            if ":" not in line:
                continue
            left, right = line.split(":", 1)
            left = left.strip()
            right = right.strip().strip("'").strip('"')
            if not left.isdigit():
                continue
            names[int(left)] = right

    return names


def class_label(class_id: Optional[int], class_names: Optional[Mapping[int, str]] = None) -> str:
    if class_id is None:
        return "object"
    names = DEFAULT_CLASS_NAMES if class_names is None else class_names
    return names.get(int(class_id), "Unknown")

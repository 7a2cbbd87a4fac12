"""JSON scene files: an ordered list of ``create`` calls.

A scene is either a list of element entries or an object with ``elements``
and an optional ``viewport``::

    {
      "viewport": [-5, -5, 5, 5],
      "elements": [
        {"type": "point", "parents": [0, 0], "name": "A"},
        {"type": "point", "parents": [2, 0], "name": "B"},
        {"type": "circle", "parents": ["A", "B"], "name": "c"},
        {"type": "glider", "parents": [0, 2, "c"], "name": "G"},
        {"type": "midpoint", "parents": ["G", "B"], "name": "M"},
        {"type": "locus", "parents": ["M"], "name": "L"}
      ]
    }

Composite constructions that create several elements take ``names``.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .constructions import Construction
from .elimination.base import EliminationClient
from .errors import GeolocusError
from .model import BoundingBox

logger = logging.getLogger(__name__)

_RESERVED = {"type", "parents", "name", "names"}


def parse_viewport(value: Any) -> BoundingBox:
    if isinstance(value, str):
        value = [part for part in value.split(",") if part.strip()]
    try:
        xmin, ymin, xmax, ymax = (float(v) for v in value)
    except (TypeError, ValueError):
        raise ValueError(f"viewport must be four numbers xmin,ymin,xmax,ymax, got {value!r}") from None
    return BoundingBox(xmin, ymin, xmax, ymax)


def _name_outputs(board: Construction, created: Any, entry: Dict[str, Any]) -> None:
    names = entry.get("names")
    if not names:
        return
    ids = created if isinstance(created, list) else [created]
    if len(names) > len(ids):
        raise ValueError(f"{entry['type']} creates {len(ids)} element(s), got {len(names)} names")
    for ref, name in zip(ids, names):
        if name:
            board.graph.get(ref).name = name


def load_scene(
    source: Union[str, Path, Dict[str, Any], List[Any]],
    client: Optional[EliminationClient] = None,
) -> Construction:
    """Build a :class:`Construction` from a scene file path or parsed JSON."""

    if isinstance(source, (str, Path)):
        data = json.loads(Path(source).read_text(encoding="utf-8"))
    else:
        data = source

    if isinstance(data, list):
        entries, viewport = data, None
    elif isinstance(data, dict):
        entries = data.get("elements", [])
        viewport = parse_viewport(data["viewport"]) if "viewport" in data else None
    else:
        raise ValueError("scene must be a list of elements or an object with 'elements'")

    board = Construction(client) if viewport is None else Construction(client, viewport=viewport)
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict) or "type" not in entry:
            raise ValueError(f"[element {index}] expected an object with a 'type'")
        attrs = {key: value for key, value in entry.items() if key not in _RESERVED}
        if entry.get("name"):
            attrs["name"] = entry["name"]
        try:
            created = board.create(entry["type"], entry.get("parents", []), **attrs)
            _name_outputs(board, created, entry)
        except (GeolocusError, KeyError, ValueError) as exc:
            raise ValueError(f"[element {index}] {entry['type']}: {exc}") from exc
    logger.info("Loaded scene with %d element(s)", len(board.graph))
    return board


__all__ = ["load_scene", "parse_viewport"]

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, Sequence, Tuple, Union

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# Class order of the shipped mangrove model (labels.txt).
DEFAULT_LABELS: Tuple[str, ...] = (
    "Alive Rhizophora",
    "Alive Trunk",
    "Dead Rhizophora",
    "Dead Trunk",
)


def label_for(labels: Sequence[str], class_id: int) -> str:
    """Class name for `class_id`, or "Class <i>" when the LabelSet has no entry."""
    if 0 <= class_id < len(labels):
        return labels[class_id]
    return f"Class {class_id}"


def parse_label_lines(lines: Iterable[str]) -> Tuple[str, ...]:
    """One class per line; surrounding whitespace stripped, blank lines skipped."""
    return tuple(s for s in (line.strip() for line in lines) if s)


def parse_metadata_names(lines: Iterable[str]) -> Dict[int, str]:
    """
    Parse the exporter's lightweight `metadata.yaml` format:

        names:
          0: Alive Rhizophora
          1: Alive Trunk
          ...

    Only the `names:` block is read; everything else is ignored.
    """

    names: Dict[int, str] = {}
    in_names = False

    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line == "names:":
            in_names = True
            continue
        if not in_names:
            continue
        # Next top-level key ends the block.
        if not raw.startswith((" ", "\t")):
            break

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


def _names_to_tuple(names: Dict[int, str]) -> Tuple[str, ...]:
    if not names:
        return ()
    size = max(names) + 1
    return tuple(names.get(i, f"Class {i}") for i in range(size))


def load_labels(path: PathLike, default: Sequence[str] = DEFAULT_LABELS) -> Tuple[str, ...]:
    """
    Load the LabelSet once at startup.

    Plain text files hold one class name per line (UTF-8); `.yaml`/`.yml`
    files are read as exporter metadata. A missing, unreadable, or empty
    resource falls back to `default` with a warning instead of raising.
    """

    p = Path(path)
    try:
        with open(p, "r", encoding="utf-8") as f:
            if p.suffix.lower() in {".yaml", ".yml"}:
                labels = _names_to_tuple(parse_metadata_names(f))
            else:
                labels = parse_label_lines(f)
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Could not read labels from %s (%s); using %d default labels", p, exc, len(default))
        return tuple(default)

    if not labels:
        logger.warning("Label file %s is empty; using %d default labels", p, len(default))
        return tuple(default)

    logger.debug("Loaded %d labels from %s", len(labels), p)
    return labels

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Union

logger = logging.getLogger(__name__)


def load_class_names(classes_path: Union[str, Path]) -> List[str]:
    """
    Load class names from a plain text file, one name per line:

        person
        bicycle
        car
        ...

    Line order is the class index order of the model's score channels, so blank
    lines are kept as (empty) names rather than skipped.
    """

    path = Path(classes_path)
    if not path.exists():
        raise FileNotFoundError(f"Classes file not found: {path}")

    names: List[str] = []
    with open(path, "r", encoding="utf-8") as f:
        for raw in f:
            names.append(raw.rstrip("\r\n"))

    logger.debug("Loaded %d class names from %s", len(names), path)
    return names

"""Pytest configuration for running the usage guide in docs/ as tests.

Every ``python`` code block of a guide page runs in one namespace, in page
order, so later blocks reuse the operators built by earlier ones. The guide
only builds in-memory operators; it needs numpy in scope and nothing on disk.
"""

from pathlib import Path
from typing import Any

import numpy as np
from sybil import Sybil
from sybil.parsers.markdown import PythonCodeBlockParser, SkipParser


def guide_namespace(namespace: dict[str, Any]) -> None:
    """Seed each guide page with numpy as ``np``."""
    namespace["np"] = np


pytest_collect_file = Sybil(
    parsers=[
        PythonCodeBlockParser(),
        SkipParser(),
    ],
    path=str(Path(__file__).parent / "docs"),
    pattern="*.md",
    setup=guide_namespace,
).pytest()

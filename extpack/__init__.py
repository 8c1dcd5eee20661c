# extpack/__init__.py
from __future__ import annotations

__version__ = "0.9.4"

ARCHIVE_EXTENSION = "extpack"

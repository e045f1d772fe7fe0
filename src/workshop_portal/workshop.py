"""Listing and reading the markdown modules of the workshop content directory."""

import logging
import re
from pathlib import Path
from typing import List

from workshop_portal.core.schema import WorkshopModule
from workshop_portal.errors import (
    ModuleNotFound,
    ModulesUnavailable,
)

logger = logging.getLogger(__name__)

_SLUG = re.compile(r"^[A-Za-z0-9_-]+$")
_HEADING_PREFIX = re.compile(r"^#+\s*")


def _describe(slug: str, text: str) -> WorkshopModule:
    lines = text.splitlines()
    title_line = next((line for line in lines if line.startswith("#")), None)
    summary_line = next(
        (line for line in lines if line.strip() and not line.strip().startswith("#")), ""
    )
    title = _HEADING_PREFIX.sub("", title_line).strip() if title_line else slug
    return WorkshopModule(slug=slug, title=title, summary=summary_line.strip())


def list_workshop_modules(directory: Path | str) -> List[WorkshopModule]:
    """
    Return one :class:`WorkshopModule` per ``*.md`` file, ordered by filename.

    Raises
    ------
    ModulesUnavailable
        If the directory or one of its files cannot be read.
    """
    root = Path(directory)
    try:
        files = sorted(path for path in root.iterdir() if path.name.endswith(".md"))
        modules = [_describe(path.stem, path.read_text(encoding="utf-8")) for path in files]
    except OSError as exc:
        logger.error("Failed to list workshop modules in %s: %s", root, exc)
        raise ModulesUnavailable("Unable to load workshop modules", details=str(exc)) from exc

    logger.debug("Listed %d workshop modules", len(modules))
    return modules


def read_workshop_module(directory: Path | str, slug: str) -> str:
    """Return the raw markdown of module *slug*."""
    if not _SLUG.match(slug):
        raise ModuleNotFound("Module not found")
    path = Path(directory) / f"{slug}.md"
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        logger.warning("Failed to load module %s: %s", slug, exc)
        raise ModuleNotFound("Module not found") from exc

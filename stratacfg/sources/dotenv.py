"""
Dotenv layer.

Dotenv files never touch the process environment. They are merged into a
separate view that the environment layer and ${env:...} placeholders read.
"""

import logging
import os
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path

from dotenv import dotenv_values

from stratacfg.exceptions import SourceError

_lg = logging.getLogger("stratacfg.sources")


def search_dotenv(name: str, dirs: Sequence[str | os.PathLike[str]]) -> Path | None:
    """Return the first existing dir/name, or None."""
    for d in dirs:
        candidate = Path(d) / name
        if candidate.is_file():
            return candidate
    return None


def dotenv_environ(
    paths: Iterable[str | os.PathLike[str]],
    environ: Mapping[str, str] | None = None,
    override: bool = False,
    search: tuple[str, Sequence[str | os.PathLike[str]]] | None = None,
    lg: logging.Logger | None = None,
) -> dict[str, str]:
    """
    Build an environment view from a base environment and dotenv files.

    Files are read in order and later files win over earlier ones. Missing
    files are skipped.

    Args:
        paths: Dotenv file paths
        environ: Base environment (default: os.environ)
        override: Let dotenv values win over keys already in the base
        search: (file name, directories); the first existing match is read
            after the explicit paths
        lg: Logger

    Returns:
        A new dict; the base environment is never modified

    Raises:
        SourceError: If an existing dotenv file cannot be read
    """
    lg = lg or _lg
    base = dict(os.environ if environ is None else environ)

    files = [Path(p) for p in paths]
    if search is not None:
        found = search_dotenv(*search)
        if found is None:
            lg.debug("no dotenv file found", extra={"file": search[0]})
        else:
            files.append(found)

    merged: dict[str, str] = {}
    for fpath in files:
        if not fpath.is_file():
            lg.debug("skipping missing dotenv file", extra={"path": str(fpath)})
            continue
        try:
            values = dotenv_values(fpath)
        except (OSError, UnicodeDecodeError) as e:
            raise SourceError(f"cannot read dotenv file: {e}", path=str(fpath)) from e
        merged.update({k: v for k, v in values.items() if v is not None})

    view = dict(base)
    for key, value in merged.items():
        if override or key not in base:
            view[key] = value
    return view

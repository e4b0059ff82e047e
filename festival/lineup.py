"""
festival/lineup.py -- Parsers for pasted or uploaded festival lineups.

Admins paste a lineup as newline-delimited text (one artist per line) or
load a text file through the CLI. Both paths reduce to a list of names that
FestivalStore.add_artists() consumes.

Pipeline:
  lineup text -> parse_lineup() -> list[str] -> FestivalStore.add_artists()

Duplicate detection against the store is NOT done here -- add_artists()
owns that so the added/skipped partitions come from one place.
"""

from pathlib import Path


def parse_lineup(content: str) -> list[str]:
    """Split newline-delimited lineup text into trimmed, non-blank names.

    Lines starting with '#' are comments. Input order is preserved and
    duplicates are kept: add_artists() reports repeats as skipped.
    """
    names: list[str] = []
    for line in content.splitlines():
        name = line.strip()
        if not name or name.startswith("#"):
            continue
        names.append(name)
    return names


def load_lineup_file(path: str) -> list[str]:
    """Read a lineup text file from disk.

    Resolves symlinks and verifies the path is a regular file before reading,
    so FIFOs and devices are never opened. Raises FileNotFoundError when the
    path is not a readable file.
    """
    file_path = Path(path).resolve()
    if not file_path.is_file():
        raise FileNotFoundError(f"'{path}' is not a readable file.")
    return parse_lineup(file_path.read_text(encoding="utf-8"))

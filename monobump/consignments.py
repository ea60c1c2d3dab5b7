"""Consignment helpers: grouping, filtering and on-disk storage.

A consignment is stored as a markdown file whose TOML front matter holds
the structured fields and whose body is the human-written summary:

    +++
    id = "20260119-093000-k3x9qa"
    timestamp = 2026-01-19T09:30:00Z
    packages = ["core"]
    change_type = "minor"
    +++

    Add streaming support.
"""

from __future__ import annotations

import secrets
import string
from collections.abc import Collection, Iterable, Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import tomlkit
from pydantic import ValidationError
from tomlkit.exceptions import TOMLKitError

from .errors import ConsignmentError
from .models import ChangeType, Consignment, max_change_type

FRONT_MATTER_DELIMITER = "+++"
ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_id(timestamp: datetime) -> str:
    """Generate a consignment id of the form YYYYMMDD-HHMMSS-<6 random chars>.

    Ids sort chronologically; the random suffix keeps ids created in the
    same second unique.
    """
    suffix = "".join(secrets.choice(ID_ALPHABET) for _ in range(6))
    return f"{timestamp.strftime('%Y%m%d-%H%M%S')}-{suffix}"


def new_consignment(
    packages: Iterable[str],
    change_type: ChangeType | str,
    summary: str,
    metadata: Mapping[str, Any] | None = None,
    *,
    now: datetime | None = None,
) -> Consignment:
    """Create a consignment with a fresh id and a UTC timestamp."""
    timestamp = now or datetime.now(timezone.utc)
    consignment_id = generate_id(timestamp)
    try:
        return Consignment(
            id=consignment_id,
            timestamp=timestamp,
            packages=list(packages),
            change_type=change_type,
            summary=summary,
            metadata=dict(metadata or {}),
        )
    except ValidationError as exc:
        raise ConsignmentError(consignment_id, _first_error(exc)) from exc


# ---------------------------------------------------------------------------
# Grouping and filtering
# ---------------------------------------------------------------------------


def group_by_package(consignments: Iterable[Consignment]) -> dict[str, list[Consignment]]:
    """Group consignments by package name, keys sorted.

    A consignment affecting several packages appears in each of their groups.
    """
    groups: dict[str, list[Consignment]] = {}
    for c in consignments:
        for pkg in c.packages:
            groups.setdefault(pkg, []).append(c)
    return {name: groups[name] for name in sorted(groups)}


def group_by_change_type(
    consignments: Iterable[Consignment],
) -> dict[ChangeType, list[Consignment]]:
    groups: dict[ChangeType, list[Consignment]] = {}
    for c in consignments:
        groups.setdefault(c.change_type, []).append(c)
    return groups


def filter_by_package(consignments: Iterable[Consignment], package: str) -> list[Consignment]:
    return [c for c in consignments if c.affects(package)]


def filter_by_packages(
    consignments: Iterable[Consignment], packages: Collection[str]
) -> list[Consignment]:
    """Keep consignments touching at least one of the given packages."""
    wanted = set(packages)
    return [c for c in consignments if wanted.intersection(c.packages)]


def highest_change_type(consignments: Iterable[Consignment]) -> ChangeType | None:
    return max_change_type(c.change_type for c in consignments)


def calculate_direct_bumps(consignments: Iterable[Consignment]) -> dict[str, ChangeType]:
    """Map each package to the most severe change among its consignments.

    Packages without consignments are absent from the result.

    Example:
        core has a "patch" and a "major" consignment → {"core": major}
    """
    bumps: dict[str, ChangeType] = {}
    for name, group in group_by_package(consignments).items():
        change_type = highest_change_type(group)
        if change_type is not None:
            bumps[name] = change_type
    return bumps


def sort_by_timestamp(consignments: Iterable[Consignment]) -> list[Consignment]:
    """Return a new list ordered oldest first (ties broken by id)."""
    return sorted(consignments, key=lambda c: (c.timestamp, c.id))


def unique_packages(consignments: Iterable[Consignment]) -> list[str]:
    return sorted({pkg for c in consignments for pkg in c.packages})


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


def dumps_consignment(consignment: Consignment) -> str:
    """Serialize a consignment to markdown with TOML front matter."""
    doc = tomlkit.document()
    doc["id"] = consignment.id
    doc["timestamp"] = consignment.timestamp
    doc["packages"] = list(consignment.packages)
    doc["change_type"] = consignment.change_type.value
    if consignment.metadata:
        doc["metadata"] = consignment.metadata
    front = tomlkit.dumps(doc).strip()
    return (
        f"{FRONT_MATTER_DELIMITER}\n{front}\n{FRONT_MATTER_DELIMITER}\n\n"
        f"{consignment.summary}\n"
    )


def loads_consignment(text: str, source: str = "<string>") -> Consignment:
    """Parse a consignment from markdown with TOML front matter.

    Raises:
        ConsignmentError: If the front matter is missing or invalid.
    """
    lines = text.splitlines()
    if not lines or lines[0].strip() != FRONT_MATTER_DELIMITER:
        raise ConsignmentError(source, "missing '+++' front matter")
    try:
        end = next(
            i
            for i, line in enumerate(lines[1:], start=1)
            if line.strip() == FRONT_MATTER_DELIMITER
        )
    except StopIteration:
        raise ConsignmentError(source, "unterminated front matter") from None

    try:
        fields = tomlkit.parse("\n".join(lines[1:end])).unwrap()
    except TOMLKitError as exc:
        raise ConsignmentError(source, f"invalid front matter: {exc}") from exc

    fields["summary"] = "\n".join(lines[end + 1 :]).strip()
    try:
        return Consignment.model_validate(fields)
    except ValidationError as exc:
        raise ConsignmentError(str(fields.get("id", source)), _first_error(exc)) from exc


def write_consignment(directory: Path, consignment: Consignment) -> Path:
    """Write a consignment to <directory>/<id>.md and return the path."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{consignment.id}.md"
    path.write_text(dumps_consignment(consignment))
    return path


def read_consignment(path: Path) -> Consignment:
    return loads_consignment(path.read_text(), source=path.stem)


def read_consignments(
    directory: Path, packages: Collection[str] | None = None
) -> list[Consignment]:
    """Read every consignment in a directory, oldest first.

    Args:
        directory: Consignment directory; a missing directory has none.
        packages: If given, only consignments touching these packages.
    """
    if not directory.is_dir():
        return []
    consignments = [read_consignment(p) for p in sorted(directory.glob("*.md"))]
    if packages:
        consignments = filter_by_packages(consignments, packages)
    return sort_by_timestamp(consignments)


def consignment_files(directory: Path) -> dict[str, list[Path]]:
    """Map each consignment id to the file(s) holding it.

    Files are matched by their front-matter id, not their name, so a
    renamed file is still found.
    """
    files: dict[str, list[Path]] = {}
    if not directory.is_dir():
        return files
    for path in sorted(directory.glob("*.md")):
        files.setdefault(read_consignment(path).id, []).append(path)
    return files


def delete_consignments(directory: Path, ids: Iterable[str]) -> list[Path]:
    """Delete consignments by id, returning the paths removed.

    Every id is checked before anything is deleted.

    Raises:
        ConsignmentError: If an id has no file or a file cannot be removed.
    """
    files = consignment_files(directory)
    wanted = sorted(set(ids))
    for consignment_id in wanted:
        if consignment_id not in files:
            raise ConsignmentError(consignment_id, f"not found in {directory}")

    removed: list[Path] = []
    for consignment_id in wanted:
        for path in files[consignment_id]:
            try:
                path.unlink()
            except OSError as exc:
                raise ConsignmentError(
                    consignment_id, f"failed to remove {path.name}: {exc}"
                ) from exc
            removed.append(path)
    return removed


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(part) for part in err["loc"])
    return f"{loc}: {err['msg']}" if loc else err["msg"]

"""Output name resolution.

Names come from the source's group (series) name, optionally followed by the
chapter number found in the file name. Final names are made unique against the
output directory listing and against names already handed out in the job.
"""

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import PurePath
from urllib.parse import unquote

from cbzkit.config.constants import PLACEHOLDER_NAMES, UNKNOWN_NAME
from cbzkit.services.storage import SourceHandle
from cbzkit.utils.fs import split_extension
from cbzkit.utils.logging import get_logger

log = get_logger(__name__)

# Last number in the name, optionally with a decimal part ("12", "12.5", "12,5")
CHAPTER_PATTERN = re.compile(r"(\d+(?:[.,]\d+)?)(?!.*\d)")
_COPY_COUNTER = re.compile(r"\s*\(\d+\)$")
_TRAILING_NUMBER = re.compile(r"[-_\s]*\d+$")


def _strip_name_noise(name: str) -> str:
    base = name.lower().rsplit(".", 1)[0]
    base = _COPY_COUNTER.sub("", base)
    base = _TRAILING_NUMBER.sub("", base)
    return base.strip()


def is_placeholder_name(name: str) -> bool:
    """Whether a name is a generic download name like ``document (3).cbz``."""
    return _strip_name_noise(name) in PLACEHOLDER_NAMES


def _is_meaningful(name: str) -> bool:
    base = _strip_name_noise(name)
    if not base:
        return False
    for placeholder in PLACEHOLDER_NAMES:
        if base == placeholder or any(base.startswith(placeholder + sep) for sep in " _-"):
            return False
    return True


def _clean_candidate(candidate: str) -> str:
    text = unquote(candidate).replace("\x00", " ").strip()
    text = text.rsplit("/", 1)[-1].rsplit(":", 1)[-1]
    text = text.split("?", 1)[0].split("#", 1)[0]
    return text.strip().strip("\"'").strip()


def clean_display_name(candidates: Iterable[str | None]) -> str:
    """First meaningful file name among URI-ish candidates, else ``"Unknown"``.

    Each candidate is URL-decoded and reduced to its last path segment, with
    any query string, fragment and surrounding quotes removed.
    """
    for candidate in candidates:
        if not candidate:
            continue
        cleaned = _clean_candidate(candidate)
        if cleaned and _is_meaningful(cleaned):
            return cleaned
    return UNKNOWN_NAME


def extract_chapter(name: str) -> str | None:
    """Last number in ``name`` as written, e.g. ``"12.5"`` for ``"Ch 12.5"``."""
    match = CHAPTER_PATTERN.search(name)
    return match.group(1) if match else None


def chapter_range_suffix(chapters: Sequence[str | None]) -> str:
    """``_<min>`` or ``_<min>-<max>`` over the numeric chapters, or ``""``.

    Commas are read as decimal points for comparison; the suffix keeps the
    original spelling.
    """
    numeric: list[tuple[float, str]] = []
    for chapter in chapters:
        if chapter is None:
            continue
        try:
            numeric.append((float(chapter.replace(",", ".")), chapter))
        except ValueError:
            continue
    if not numeric:
        return ""
    low = min(numeric, key=lambda pair: pair[0])
    high = max(numeric, key=lambda pair: pair[0])
    if low == high:
        return f"_{low[1]}"
    return f"_{low[1]}-{high[1]}"


def part_name(name: str, part_number: int) -> str:
    """``"Series_part-2.pdf"`` for part 2 of ``"Series.pdf"``."""
    stem, ext = split_extension(name)
    return f"{stem}_part-{part_number}{ext}"


def resolve_conflicts(names: Sequence[str], existing: Iterable[str]) -> list[str]:
    """Make every name unique against ``existing`` and against each other.

    A taken ``"Series A.pdf"`` becomes ``"Series A 1.pdf"``, then
    ``"Series A 2.pdf"``. Accepted names join the taken set in order, so the
    result only depends on the inputs.
    """
    taken = set(existing)
    resolved = []
    for name in names:
        stem, ext = split_extension(name)
        candidate = name
        version = 1
        while candidate in taken:
            candidate = f"{stem} {version}{ext}"
            version += 1
        taken.add(candidate)
        resolved.append(candidate)
    return resolved


@dataclass
class NamingContext:
    """Job-scoped cache of resolved display and group names, keyed by identity."""

    display_names: dict[str, str] = field(default_factory=dict)
    group_names: dict[str, str] = field(default_factory=dict)

    def clear(self) -> None:
        self.display_names.clear()
        self.group_names.clear()


class NamingResolver:
    """Derives base names, part names and conflict-free final names."""

    def __init__(self, context: NamingContext | None = None) -> None:
        self.context = context if context is not None else NamingContext()

    def display_name(self, source: SourceHandle) -> str:
        """Cleaned file name of a source, cached per job."""
        cached = self.context.display_names.get(source.identity)
        if cached is None:
            cached = clean_display_name([source.display_name, source.identity])
            self.context.display_names[source.identity] = cached
        return cached

    def group_for(self, source: SourceHandle) -> str:
        """Series name for a source.

        Tries the explicit group name, then the parent folder, then the file's
        own base name, skipping placeholders; falls back to ``"Unknown"``.
        """
        cached = self.context.group_names.get(source.identity)
        if cached is not None:
            return cached

        parent = PurePath(source.parent_id).name if source.parent_id else None
        base = split_extension(self.display_name(source))[0]
        group = UNKNOWN_NAME
        for candidate in (source.group_name, parent, base):
            if candidate and candidate.strip() and not is_placeholder_name(candidate):
                group = candidate.strip()
                break

        self.context.group_names[source.identity] = group
        return group

    def can_merge(self, sources: Sequence[SourceHandle]) -> bool:
        """Whether the sources belong to one series and may be merged.

        All group names must match; when any source has no group name, all
        parent identities must match instead.
        """
        if len(sources) <= 1:
            return True
        groups = {source.group_name for source in sources}
        if None not in groups:
            return len(groups) == 1
        parents = {source.parent_id for source in sources}
        return len(parents) == 1 and None not in parents

    def base_names(
        self,
        sources: Sequence[SourceHandle],
        extension: str,
        chapter_auto_name: bool = False,
        custom_name: str | None = None,
        merge: bool = False,
    ) -> list[str]:
        """One base output name per source, before part suffixes and conflicts.

        When ``merge`` is set only the first name is used by the caller; it
        covers the whole chapter range of the merged sources.
        """
        custom = (custom_name or "").strip()
        if custom:
            if merge or len(sources) == 1:
                return [f"{custom}{extension}"] + [
                    f"{custom}_{index + 1}{extension}" for index in range(1, len(sources))
                ]
            return [f"{custom}_{index + 1}{extension}" for index in range(len(sources))]

        groups = [self.group_for(source) for source in sources]
        if chapter_auto_name:
            chapters = [
                extract_chapter(split_extension(self.display_name(source))[0])
                for source in sources
            ]
        else:
            chapters = [None] * len(sources)

        names = []
        for index, group in enumerate(groups):
            chapter = chapters[index]
            if not chapter_auto_name:
                suffix = ""
            elif chapter is not None:
                suffix = f"_{chapter}"
            elif len(sources) == 1:
                suffix = ""
            else:
                suffix = f"_{index + 1}"
            names.append(f"{group}{suffix}{extension}")

        if merge and sources:
            suffix = chapter_range_suffix(chapters) if chapter_auto_name else ""
            names[0] = f"{groups[0]}{suffix}{extension}"

        log.debug("Base names resolved", names=names, merge=merge)
        return names

"""Repair of mis-decoded Persian text coming out of legacy DBF attribute tables.

Shapefile attribute tables for Iranian administrative data are frequently
written in Windows-1256 but read back as Latin-1 (or Windows-1252), which turns
every Persian name into mojibake such as ``Ã‡Ã`` sequences. Repair re-encodes
the string with the reader's code page and decodes it again with the writer's;
a candidate is only accepted when the result actually contains Arabic-script
characters. Anything else falls back to the original value.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import re
from typing import Any, Optional, Sequence

logger = logging.getLogger(__name__)

__all__ = [
    "TextRepair",
    "repair_text",
    "fix_text",
    "has_target_script",
    "DEFAULT_LEGACY_CODEPAGE",
]

DEFAULT_LEGACY_CODEPAGE = "cp1256"

_TARGET_SCRIPT = re.compile("[\u0600-\u06ff]")
# Latin-1 artefacts left behind when UTF-8 or cp1256 bytes are read as Latin-1
_MOJIBAKE_MARKERS = ("Ã", "Ø", "Ù", "Ú", "Û", "Â")
_READER_CODECS = ("latin-1", "cp1252")


@dataclass(frozen=True, slots=True)
class TextRepair:
    original: Any
    text: Any
    corrected: bool
    codec: Optional[str] = None


def has_target_script(value: Any) -> bool:
    return isinstance(value, str) and bool(_TARGET_SCRIPT.search(value))


def _looks_mangled(value: str) -> bool:
    return any(marker in value for marker in _MOJIBAKE_MARKERS)


def _candidates(legacy_codepage: str) -> Sequence[tuple[str, str]]:
    # UTF-8 first: strict UTF-8 rarely succeeds on genuine cp1256 bytes, while
    # cp1256 happily decodes UTF-8 bytes into plausible-looking Arabic letters.
    pairs: list[tuple[str, str]] = [(reader, "utf-8") for reader in _READER_CODECS]
    pairs.extend((reader, legacy_codepage) for reader in _READER_CODECS)
    return pairs


def repair_text(value: Any, *, legacy_codepage: str = DEFAULT_LEGACY_CODEPAGE) -> TextRepair:
    """Return ``value`` re-decoded into Persian script when that is demonstrably better."""
    if not isinstance(value, str) or not value:
        return TextRepair(value, value, False)
    if has_target_script(value) and not _looks_mangled(value):
        return TextRepair(value, value, False)
    if value.isascii():
        return TextRepair(value, value, False)

    for reader, writer in _candidates(legacy_codepage):
        try:
            raw = value.encode(reader)
            fixed = raw.decode(writer)
        except (UnicodeEncodeError, UnicodeDecodeError, LookupError):
            continue
        if fixed != value and has_target_script(fixed):
            logger.info(
                "text.repaired original=%r corrected=%r codec=%s->%s",
                value,
                fixed,
                reader,
                writer,
            )
            return TextRepair(value, fixed, True, f"{reader}->{writer}")

    return TextRepair(value, value, False)


def fix_text(value: Any, *, legacy_codepage: str = DEFAULT_LEGACY_CODEPAGE) -> Any:
    return repair_text(value, legacy_codepage=legacy_codepage).text

"""
Byte-level text recovery for imported growth-record files.

Files arrive from phones, hand edits and spreadsheet exports, so the encoding
is unknown. Decoding never raises: the best-effort text is always returned and
real corruption surfaces later as format/date errors.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Tuple

from charset_normalizer import from_bytes

from .rules import BOM_ARTIFACTS, LEGACY_ENCODING, UTF16_BOMS, UTF8_BOM

logger = logging.getLogger(__name__)

# C0 controls other than tab/LF/CR, plus DEL.
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def looks_garbled(text: str) -> bool:
    """True when a decode produced replacement or stray control characters."""
    return "\ufffd" in text or _CONTROL_CHARS.search(text) is not None


def strip_utf8_boms(raw: bytes) -> Tuple[bytes, int]:
    """Remove every leading UTF-8 BOM; returns the rest and how many were removed."""
    count = 0
    while raw.startswith(UTF8_BOM):
        raw = raw[len(UTF8_BOM):]
        count += 1
    return raw, count


def strip_bom_artifacts(text: str) -> str:
    """Remove leading leftovers of BOMs that were decoded with the wrong codec."""
    changed = True
    while changed:
        changed = False
        for artifact in BOM_ARTIFACTS:
            if text.startswith(artifact):
                text = text[len(artifact):]
                changed = True
    return text


def _detect_with_charset_normalizer(raw: bytes) -> Tuple[str | None, str | None]:
    match = from_bytes(raw).best()
    if match is None:
        return None, None
    return match.encoding, str(match)


def decode_bytes(raw: bytes) -> Tuple[str, Dict[str, Any]]:
    """
    Recover text from raw bytes of unknown encoding.

    Order:
    - strip leading UTF-8 BOMs (any number of them)
    - UTF-16 when a UTF-16 BOM is present
    - UTF-8, then the legacy CJK encoding, then charset-normalizer's best guess
    - if all of them look garbled, the UTF-8 result with replacement characters

    Newlines are normalized to LF. Returns the text and a small report.
    """
    body, boms = strip_utf8_boms(raw)

    decode_used = "utf-8"
    fallback = False

    if body.startswith(UTF16_BOMS):
        text = body.decode("utf-16", errors="replace")
        decode_used = "utf-16"
    else:
        text = body.decode("utf-8", errors="replace")
        if looks_garbled(text):
            legacy = body.decode(LEGACY_ENCODING, errors="replace")
            if not looks_garbled(legacy):
                text = legacy
                decode_used = LEGACY_ENCODING
            else:
                detected, guessed = _detect_with_charset_normalizer(body)
                if guessed is not None and not looks_garbled(guessed):
                    text = guessed
                    decode_used = detected
                else:
                    fallback = True
                    logger.warning(
                        "Could not find a clean decoding for %s bytes; keeping UTF-8 with replacements",
                        len(body),
                    )

    text = strip_bom_artifacts(text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")

    if decode_used != "utf-8":
        logger.info("Decoded input as %s", decode_used)

    report = {
        "decode_used": decode_used,
        "decode_fallback": fallback,
        "boms_stripped": boms,
    }
    return text, report

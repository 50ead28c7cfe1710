"""Invisible manuscript watermarking and leak detection.

Every partner receives a copy of the manuscript carrying a per-share
``watermark_id`` encoded three independent ways (zero-width marks, homoglyph
substitution, sentence spacing) so the mark survives if one encoding is
stripped. Everything here is a pure ``str`` transform; nothing touches I/O.
"""

from __future__ import annotations

import hashlib
import json
import re
import secrets
import time
from collections import Counter
from datetime import datetime, timezone
from typing import Dict, List, NamedTuple, Tuple

from ottowrite.models.access import WatermarkData, WatermarkDetection
from ottowrite.models.enums import ManuscriptFormat, WatermarkTechnique

__all__ = [
    "BitCursor",
    "apply_watermark",
    "apply_zero_width_watermark",
    "build_watermark_metadata",
    "create_document_fingerprint",
    "detect_watermark",
    "encode_whitespace",
    "encode_zero_width",
    "generate_watermark_id",
    "substitute_homoglyphs",
    "techniques_for",
    "watermark_bits",
    "watermark_manuscript",
]

WATERMARK_ID_LENGTH = 32
ZERO_WIDTH_INSERT_INTERVAL = 1000

# base-4 digit -> invisible code point
ZERO_WIDTH_DIGITS: Dict[str, str] = {
    "0": "\N{ZERO WIDTH SPACE}",
    "1": "\N{ZERO WIDTH NON-JOINER}",
    "2": "\N{ZERO WIDTH JOINER}",
    "3": "\N{ZERO WIDTH NO-BREAK SPACE}",
}
ZERO_WIDTH_SEPARATOR = "\N{ZERO WIDTH SPACE}"
_ZERO_WIDTH_RE = re.compile("[" + "".join(ZERO_WIDTH_DIGITS.values()) + "]")

# First entry is the one substituted; the rest are only looked for on detection.
HOMOGLYPHS: Dict[str, Tuple[str, ...]] = {
    "a": ("\N{CYRILLIC SMALL LETTER A}", "\N{LATIN SMALL LETTER ALPHA}"),
    "e": ("\N{CYRILLIC SMALL LETTER IE}", "\N{CYRILLIC SMALL LETTER ABKHASIAN CHE}"),
    "o": ("\N{CYRILLIC SMALL LETTER O}", "\N{ARMENIAN SMALL LETTER OH}"),
    "p": ("\N{CYRILLIC SMALL LETTER ER}",),
    "c": ("\N{CYRILLIC SMALL LETTER ES}",),
    "x": ("\N{CYRILLIC SMALL LETTER HA}",),
    "y": ("\N{CYRILLIC SMALL LETTER U}",),
    "i": ("\N{CYRILLIC SMALL LETTER BYELORUSSIAN-UKRAINIAN I}", "\N{LATIN SMALL LETTER IOTA}"),
}
_ELIGIBLE = frozenset(HOMOGLYPHS) | frozenset(c.upper() for c in HOMOGLYPHS)
_ALL_HOMOGLYPHS = frozenset(
    g for glyphs in HOMOGLYPHS.values() for variant in glyphs for g in (variant, variant.upper())
)

_WHITESPACE_MARK_RE = re.compile(r"\.[ ]{2,}")


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------

def generate_watermark_id(submission_id: str, partner_id: str, user_id: str) -> str:
    """Return a fresh 32-hex-char watermark id.

    Not derivable from public inputs: the hash covers 8 CSPRNG bytes, so it
    has to be stored server-side for later detection.
    """
    epoch_ms = int(time.time() * 1000)
    data = f"{submission_id}-{partner_id}-{user_id}-{epoch_ms}-{secrets.token_hex(8)}"
    return hashlib.sha256(data.encode("utf-8")).hexdigest()[:WATERMARK_ID_LENGTH]


def watermark_bits(watermark_id: str) -> str:
    """Bitstream ('0'/'1' chars, 8 per byte) for the homoglyph and spacing encoders."""
    try:
        raw = bytes.fromhex(watermark_id)
    except ValueError:
        raw = watermark_id.encode("utf-8")
    return "".join(f"{byte:08b}" for byte in raw)


class BitCursor(NamedTuple):
    """Immutable read position over a watermark bitstream."""

    bits: str
    position: int = 0

    @classmethod
    def for_id(cls, watermark_id: str) -> "BitCursor":
        return cls(watermark_bits(watermark_id))

    @property
    def exhausted(self) -> bool:
        return self.position >= len(self.bits)

    def read(self) -> Tuple[str, "BitCursor"]:
        if self.exhausted:
            raise IndexError("bitstream exhausted")
        return self.bits[self.position], self._replace(position=self.position + 1)


# ---------------------------------------------------------------------------
# Zero-width characters
# ---------------------------------------------------------------------------

def _to_base4(n: int) -> str:
    if n == 0:
        return "0"
    digits = []
    while n:
        n, rem = divmod(n, 4)
        digits.append(str(rem))
    return "".join(reversed(digits))


def encode_zero_width(data: str) -> str:
    return ZERO_WIDTH_SEPARATOR.join(
        "".join(ZERO_WIDTH_DIGITS[d] for d in _to_base4(ord(ch))) for ch in data
    )


def apply_zero_width_watermark(text: str, watermark_id: str) -> str:
    """Insert the zero-width mark after the opening paragraph, roughly every
    1000 characters at a sentence-ending line, and before the last paragraph.
    """
    mark = encode_zero_width(watermark_id)
    lines = text.split("\n")
    out = []
    since_mark = 0

    for i, line in enumerate(lines):
        if i == 0 or (i == 1 and not lines[0].strip()):
            out.append(line + mark)
        elif since_mark >= ZERO_WIDTH_INSERT_INTERVAL and line.strip().endswith("."):
            out.append(line + mark)
            since_mark = 0
        elif i == len(lines) - 1 and line.strip():
            out.append(mark + line)
        else:
            out.append(line)
        since_mark += len(line)

    return "\n".join(out)


# ---------------------------------------------------------------------------
# Bitstream encoders
# ---------------------------------------------------------------------------

def substitute_homoglyphs(text: str, cursor: BitCursor) -> Tuple[str, BitCursor]:
    """Consume one bit per eligible letter; ``1`` swaps in the look-alike."""
    out = []
    for ch in text:
        if ch not in _ELIGIBLE or cursor.exhausted:
            out.append(ch)
            continue
        bit, cursor = cursor.read()
        if bit == "1":
            glyph = HOMOGLYPHS[ch.lower()][0]
            out.append(glyph if ch.islower() else glyph.upper())
        else:
            out.append(ch)
    return "".join(out), cursor


def encode_whitespace(text: str, cursor: BitCursor) -> Tuple[str, BitCursor]:
    """Re-space every ``". "``: one space for bit ``0``, two for bit ``1``."""
    out = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        out.append(ch)
        if ch == "." and i + 1 < n and text[i + 1] == " " and not cursor.exhausted:
            bit, cursor = cursor.read()
            out.append("  " if bit == "1" else " ")
            i += 2
            continue
        i += 1
    return "".join(out), cursor


def apply_watermark(text: str, watermark_id: str) -> str:
    """Zero-width, then homoglyph, then whitespace; each reads the id from bit 0."""
    marked = apply_zero_width_watermark(text, watermark_id)
    marked, _ = substitute_homoglyphs(marked, BitCursor.for_id(watermark_id))
    marked, _ = encode_whitespace(marked, BitCursor.for_id(watermark_id))
    return marked


def techniques_for(format: ManuscriptFormat) -> List[WatermarkTechnique]:
    """Techniques applied for a container format; text techniques need extracted text."""
    techniques = []
    if format in (ManuscriptFormat.text, ManuscriptFormat.docx):
        techniques += [
            WatermarkTechnique.zero_width_chars,
            WatermarkTechnique.homoglyph_substitution,
            WatermarkTechnique.whitespace_encoding,
        ]
    return techniques + [WatermarkTechnique.metadata_embedding, WatermarkTechnique.fingerprinting]


def watermark_manuscript(
    content: str,
    submission_id: str,
    partner_id: str,
    user_id: str,
    format: ManuscriptFormat = ManuscriptFormat.text,
    watermark_id: str | None = None,
    *,
    timestamp: datetime | None = None,
) -> Tuple[str, WatermarkData]:
    """Watermark *content* for one partner share and describe what was applied.

    PDF content is returned untouched: the caller's format extractor owns the
    container, so only metadata embedding and fingerprinting are recorded.
    """
    wm_id = watermark_id or generate_watermark_id(submission_id, partner_id, user_id)
    techniques = techniques_for(format)
    marked = apply_watermark(content, wm_id) if WatermarkTechnique.zero_width_chars in techniques else content

    data = WatermarkData(
        watermark_id=wm_id,
        partner_id=partner_id,
        submission_id=submission_id,
        user_id=user_id,
        timestamp=timestamp or datetime.now(timezone.utc),
        format=format,
        technique=techniques,
    )
    return marked, data


def build_watermark_metadata(data: WatermarkData, fingerprint: str | None = None) -> Dict[str, str]:
    """Document-property key/values for containers the text encoders can't reach."""
    meta = {
        "ottowrite:watermark_id": data.watermark_id,
        "ottowrite:submission_id": data.submission_id,
        "ottowrite:issued_at": data.timestamp.isoformat(),
        "ottowrite:techniques": ",".join(t.value for t in data.technique),
    }
    if fingerprint:
        meta["ottowrite:fingerprint"] = fingerprint
    return meta


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------

def detect_watermark(text: str, watermark_id: str) -> WatermarkDetection:
    """Presence heuristics for each encoding. Only the zero-width check can
    fail to match once attempted; the others are presence-only.
    """
    found = []
    matched = 0
    attempted = 0

    if _ZERO_WIDTH_RE.search(text):
        found.append(WatermarkTechnique.zero_width_chars)
        attempted += 1
        if encode_zero_width(watermark_id) in text:
            matched += 1

    if any(ch in _ALL_HOMOGLYPHS for ch in text):
        found.append(WatermarkTechnique.homoglyph_substitution)
        attempted += 1
        matched += 1

    if _WHITESPACE_MARK_RE.search(text):
        found.append(WatermarkTechnique.whitespace_encoding)
        attempted += 1
        matched += 1

    return WatermarkDetection(
        detected=bool(found),
        confidence=matched / attempted if attempted else 0.0,
        techniques=found,
    )


def _md5(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest()


def create_document_fingerprint(text: str) -> str:
    """Coarse SHA-256 fingerprint for matching near-duplicate leaked copies."""
    freq = Counter(re.sub(r"\s+", "", text.lower()))
    characteristics = {
        "length": len(text),
        "wordCount": len(re.split(r"\s+", text)),
        "paragraphs": len(re.split(r"\n\n+", text)),
        "sentences": len(re.split(r"[.!?]+", text)),
        "startHash": _md5(text[:100]),
        "endHash": _md5(text[-100:]),
        "charFreq": dict(freq.most_common(10)),
    }
    encoded = json.dumps(characteristics, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()

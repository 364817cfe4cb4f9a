"""Raw-byte text recovery for PDFs the structured parser cannot read.

Each strategy is a pure ``bytes -> str`` function. They are tried in the
order of ``FALLBACK_STRATEGIES`` and the first non-empty result wins.

Handles:
- Content-stream text-show operators (Tj, ', ", TJ)
- BT...ET blocks inside stream...endstream regions
- Parenthesized string heuristics
- Readable ASCII runs
- Literal string escape decoding and output cleanup
"""
import re
import zlib
from typing import Callable, List, Optional, Tuple

import structlog

from docqa import config

logger = structlog.get_logger()

Strategy = Callable[[bytes], str]

# Literal string body allowing one level of balanced nested parentheses
_LITERAL = r"(?:\\.|[^\\()]|\((?:\\.|[^\\()])*\))*"

TEXT_SHOW_PATTERN = re.compile(
    r"\((?P<literal>" + _LITERAL + r")\)\s*(?P<op>Tj|'|\")"
    r"|<(?P<hex>[0-9A-Fa-f\s]*)>\s*Tj"
    r"|\[(?P<array>(?:\\.|[^\\\]])*)\]\s*TJ",
    re.DOTALL,
)
ARRAY_ITEM_PATTERN = re.compile(
    r"\((?P<literal>" + _LITERAL + r")\)|<(?P<hex>[0-9A-Fa-f\s]*)>|(?P<num>-?\d*\.?\d+)",
    re.DOTALL,
)
STREAM_PATTERN = re.compile(rb"stream\r?\n?(.*?)\r?\n?endstream", re.DOTALL)
TEXT_OBJECT_PATTERN = re.compile(r"\bBT\b(.*?)\bET\b", re.DOTALL)
PAREN_STRING_PATTERN = re.compile(r"\((" + _LITERAL + r")\)", re.DOTALL)
SIMPLE_PAREN_PATTERN = re.compile(r"\(([^()]{2,})\)")
ASCII_RUN_PATTERN = re.compile(r"[\x20-\x7e]{4,}")
ESCAPE_PATTERN = re.compile(r"\\(\r\n|\r|\n|[0-7]{1,3}|.)", re.DOTALL)
STRUCTURAL_TOKEN_PATTERN = re.compile(r"\b(?:endobj|obj|endstream|stream)\b")
OBJECT_HEADER_PATTERN = re.compile(r"^\d+\s+\d+\s+(?:obj|R)$")

STRUCTURAL_TOKENS = {"obj", "endobj", "stream", "endstream", "xref", "trailer", "startxref"}
SIMPLE_ESCAPES = {"n": "\n", "r": "\r", "t": "\t", "b": "\b", "f": "\f"}

# TJ kerning at or beyond this (thousandths of an em) reads as a word gap
TJ_SPACE_THRESHOLD = -200


def decode_escapes(raw: str) -> str:
    """Decode PDF literal string escape sequences.

    Supports \\n \\r \\t \\b \\f, escaped parentheses and backslash, octal
    character codes and backslash line continuations. Unknown escapes keep
    the escaped character and drop the backslash.
    """

    def _replace(match: re.Match) -> str:
        seq = match.group(1)
        if seq in ("\r\n", "\r", "\n"):
            return ""
        if seq in SIMPLE_ESCAPES:
            return SIMPLE_ESCAPES[seq]
        if seq[0] in "01234567":
            return chr(int(seq, 8) & 0xFF)
        return seq

    return ESCAPE_PATTERN.sub(_replace, raw)


def decode_hex_string(raw: str) -> str:
    """Decode a ``<...>`` hex string, padding an odd trailing digit with 0."""
    digits = re.sub(r"\s+", "", raw)
    if len(digits) % 2:
        digits += "0"
    try:
        data = bytes.fromhex(digits)
    except ValueError:
        return ""
    # Two-byte strings with a zero high byte are UTF-16BE from CID fonts
    if data.startswith(b"\xfe\xff") or (len(data) >= 2 and data[0] == 0):
        return data.decode("utf-16-be", errors="ignore").lstrip("\ufeff")
    return data.decode("latin-1")


def clean_text(text: str) -> str:
    """Normalize extracted text for chunking.

    Normalizes line endings, drops unprintable characters (keeping newline
    and tab), strips leftover structural tokens, collapses horizontal
    whitespace and squeezes runs of blank lines down to one.
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = "".join(ch for ch in text if ch.isprintable() or ch in "\n\t")
    text = STRUCTURAL_TOKEN_PATTERN.sub(" ", text)
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r" *\n *", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def inflate_budget(data: bytes) -> int:
    """Largest total number of inflated bytes allowed for an input."""
    return min(config.MAX_INFLATED_BYTES, len(data) * config.MAX_INFLATE_RATIO)


def inflate_streams(data: bytes, budget: Optional[int] = None) -> bytes:
    """Append the inflated form of every zlib-compressed stream to ``data``.

    Streams that do not inflate are left as they are. The original bytes
    come first. Inflated output stops once ``budget`` bytes (default
    ``inflate_budget(data)``) have been produced.
    """
    budget = budget if budget is not None else inflate_budget(data)
    if budget <= 0:
        return data

    remaining = budget
    inflated = []

    for match in STREAM_PATTERN.finditer(data):
        inflater = zlib.decompressobj()
        try:
            # Truncated streams still inflate partially
            body = inflater.decompress(match.group(1), remaining)
        except zlib.error:
            continue

        if body:
            inflated.append(body)
            remaining -= len(body)
        if remaining <= 0 or inflater.unconsumed_tail:
            logger.warning("pdf_inflate_truncated", budget=budget, size=len(data))
            break

    if not inflated:
        return data

    logger.debug("pdf_streams_inflated", count=len(inflated))
    parts = [data]
    for body in inflated:
        parts.append(b"\nstream\n" + body + b"\nendstream\n")
    return b"".join(parts)


def _as_text(data: bytes) -> str:
    return data.decode("latin-1")


def _decode_array(array: str) -> str:
    parts = []
    for item in ARRAY_ITEM_PATTERN.finditer(array):
        if item.group("literal") is not None:
            parts.append(decode_escapes(item.group("literal")))
        elif item.group("hex") is not None:
            parts.append(decode_hex_string(item.group("hex")))
        elif item.group("num") is not None:
            try:
                if float(item.group("num")) <= TJ_SPACE_THRESHOLD:
                    parts.append(" ")
            except ValueError:
                continue
    return "".join(parts)


def scan_text_operators(data: bytes) -> str:
    """Decode the string operands of text-show operators.

    Covers ``(...) Tj``, ``(...) '``, ``aw ac (...) "``, ``<...> Tj`` and
    the ``[...] TJ`` array form, in content-stream order.
    """
    pieces = []
    for match in TEXT_SHOW_PATTERN.finditer(_as_text(data)):
        if match.group("literal") is not None:
            decoded = decode_escapes(match.group("literal"))
            # ' and " move to the next line before showing
            if match.group("op") in ("'", '"') and pieces:
                pieces.append("\n")
        elif match.group("hex") is not None:
            decoded = decode_hex_string(match.group("hex"))
        else:
            decoded = _decode_array(match.group("array"))

        if decoded.strip():
            if pieces and pieces[-1] != "\n":
                pieces.append(" ")
            pieces.append(decoded)

    return clean_text("".join(pieces))


def scan_stream_blocks(data: bytes) -> str:
    """Pull parenthesized strings from BT...ET blocks inside streams."""
    lines = []
    for stream in STREAM_PATTERN.finditer(data):
        content = _as_text(stream.group(1))
        for block in TEXT_OBJECT_PATTERN.finditer(content):
            strings = [
                decode_escapes(m.group(1))
                for m in PAREN_STRING_PATTERN.finditer(block.group(1))
            ]
            line = " ".join(s for s in strings if s.strip())
            if line:
                lines.append(line)

    return clean_text("\n".join(lines))


def scan_parentheticals(data: bytes) -> str:
    """Collect any parenthesized run longer than one character with a letter."""
    found = []
    for match in SIMPLE_PAREN_PATTERN.finditer(_as_text(data)):
        run = decode_escapes(match.group(1))
        if any(ch.isalpha() for ch in run):
            found.append(run)

    return clean_text(" ".join(found))


def _is_structural(run: str) -> bool:
    token = run.strip()
    if not token or token in STRUCTURAL_TOKENS:
        return True
    if OBJECT_HEADER_PATTERN.match(token):
        return True
    # PDF names, dictionaries and comments
    if token.startswith(("/", "<<", ">>", "%")):
        return True
    # Purely numeric or punctuation
    return not any(ch.isalpha() for ch in token)


def scan_readable_ascii(data: bytes) -> str:
    """Last resort: keep printable runs of four or more characters."""
    runs = [
        match.group(0).strip()
        for match in ASCII_RUN_PATTERN.finditer(_as_text(data))
        if not _is_structural(match.group(0))
    ]

    return clean_text("\n".join(runs))


FALLBACK_STRATEGIES: List[Tuple[str, Strategy]] = [
    ("text_operators", scan_text_operators),
    ("stream_blocks", scan_stream_blocks),
    ("parentheticals", scan_parentheticals),
    ("readable_ascii", scan_readable_ascii),
]


def run_fallback_chain(
    data: bytes, strategies: Optional[List[Tuple[str, Strategy]]] = None
) -> Tuple[Optional[str], str]:
    """Try each strategy in order until one yields non-empty text.

    Args:
        data: Raw PDF bytes
        strategies: Ordered (name, function) pairs (default FALLBACK_STRATEGIES)

    Returns:
        Tuple of (strategy name or None, extracted text or "")
    """
    strategies = strategies if strategies is not None else FALLBACK_STRATEGIES
    payload = inflate_streams(data)

    for name, strategy in strategies:
        try:
            text = strategy(payload)
        except Exception as e:
            logger.warning("pdf_fallback_strategy_failed", strategy=name, error=str(e))
            continue

        if text.strip():
            logger.info("pdf_fallback_succeeded", strategy=name, text_length=len(text))
            return name, text

        logger.debug("pdf_fallback_empty", strategy=name)

    return None, ""

"""Unified diffs of reformatter output, with headers git can apply.

A raw diff is produced the way `diff -u <file> -` would label it: the source
side carries the checked path, the target side is "-" (standard output).
`rewrite_headers` then turns that header pair into `--- a/<path>` /
`+++ b/<path>`. Two independent escaping steps are involved:

- source side: the raw diff is labelled with the quoted path (one header
  line even for names holding a newline), and that label is matched
  literally, so `*`, `[` or `|` in a name are never pattern syntax;
- output: the rewritten name is C-quoted the way git quotes paths, so
  quotes, backslashes, whitespace and non-ASCII bytes survive `git apply`.
"""

from __future__ import annotations

import difflib
import re

NO_NEWLINE_MARKER = "\\ No newline at end of file"
STDOUT_LABEL = "-"

_C_ESCAPES: dict[str, str] = {
    "\a": "\\a",
    "\b": "\\b",
    "\t": "\\t",
    "\n": "\\n",
    "\v": "\\v",
    "\f": "\\f",
    "\r": "\\r",
    '"': '\\"',
    "\\": "\\\\",
}


def decode_content(data: bytes) -> str:
    return data.decode("utf-8", errors="surrogateescape")


def encode_content(text: str) -> bytes:
    return text.encode("utf-8", errors="surrogateescape")


def _split_lines(text: str) -> list[str]:
    # Only "\n" ends a line for diff/patch purposes; str.splitlines would also
    # split on "\r", form feeds and friends.
    parts = text.split("\n")
    out = [p + "\n" for p in parts[:-1]]
    if parts[-1]:
        out.append(parts[-1])
    return out


def unified_diff(original: bytes, modified: bytes, source_label: str, target_label: str = STDOUT_LABEL) -> str:
    """Unified diff (3 lines of context) or "" when the contents are identical."""
    if original == modified:
        return ""

    out: list[str] = []
    for line in difflib.unified_diff(
        _split_lines(decode_content(original)),
        _split_lines(decode_content(modified)),
        fromfile=source_label,
        tofile=target_label,
        lineterm="\n",
    ):
        if line.endswith("\n"):
            out.append(line)
        else:
            out.append(line + "\n" + NO_NEWLINE_MARKER + "\n")
    return "".join(out)


def needs_quoting(name: str) -> bool:
    for ch in name:
        if ch in _C_ESCAPES or ch.isspace():
            return True
        if ord(ch) < 0x20 or ord(ch) >= 0x7F:
            return True
    return False


def quote_path(name: str) -> str:
    """Quote `name` like git does for diff headers; plain names pass through."""
    if not needs_quoting(name):
        return name
    out: list[str] = []
    for ch in name:
        if ch in _C_ESCAPES:
            out.append(_C_ESCAPES[ch])
        elif 0x20 <= ord(ch) < 0x7F:
            out.append(ch)
        else:
            for b in encode_content(ch):
                out.append(f"\\{b:03o}")
    return '"' + "".join(out) + '"'


def header_name(prefix: str, path: str) -> str:
    return quote_path(prefix + path)


def rewrite_headers(diff_text: str, source_label: str, path: str, target_label: str = STDOUT_LABEL) -> str:
    """Replace the first header pair of `diff_text` with the a/ b/ form of `path`."""
    if not diff_text:
        return ""

    lines = diff_text.split("\n", 2)
    if len(lines) < 3:
        raise ValueError("diff text too short to carry a header pair")

    source_re = re.compile(r"--- " + re.escape(source_label) + r"(\t.*)?")
    target_re = re.compile(r"\+\+\+ " + re.escape(target_label) + r"(\t.*)?")
    if not source_re.fullmatch(lines[0]) or not target_re.fullmatch(lines[1]):
        raise ValueError(f"unexpected diff header for {path!r}: {lines[0]!r} / {lines[1]!r}")

    return (
        f"--- {header_name('a/', path)}\n"
        f"+++ {header_name('b/', path)}\n"
        f"{lines[2]}"
    )

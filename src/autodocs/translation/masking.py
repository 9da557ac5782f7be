"""
Placeholder masking for translation.

Non-translatable spans (code, URLs, markup, front-matter structure) are
replaced by stable tokens such as ``[id0]`` before text reaches an engine and
restored afterwards. Restoration is lossless: every masked span comes back
byte-identical.
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field

from autodocs.errors import AssemblyError

# Token keywords, tried in order until one does not occur in the source
TOKEN_KEYWORDS = ("id", "ph", "tk", "mk", "zx")

# Markdown spans, masked in this order
FRONT_MATTER_RE = re.compile(
    r"\A(?P<open>(?P<delim>---|\+\+\+)[ \t]*)\n(?:(?P<body>.*?)\n)?(?P<close>(?P=delim)[ \t]*)(?=\n|\Z)",
    re.DOTALL,
)
FENCED_CODE_RE = re.compile(
    r"^[ \t]*(?P<fence>`{3,}|~{3,}).*?(?:^[ \t]*(?P=fence)[`~]*[ \t]*$|\Z)",
    re.MULTILINE | re.DOTALL,
)
HTML_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
INLINE_CODE_RE = re.compile(r"``[^\n]+?``|`[^`\n]+`")
LINK_TARGET_RE = re.compile(
    r"(?<=\])\((?:[^()\s]|\([^()\s]*\))*(?:\s+(?:\"[^\"\n]*\"|'[^'\n]*'))?\)"
)
REFERENCE_DEF_RE = re.compile(r"^[ \t]{0,3}(?P<label>\[[^\]\n]+\]):[ \t]*\S.*$", re.MULTILINE)
AUTOLINK_RE = re.compile(r"<(?:https?|ftp|mailto):[^>\s]+>")
HTML_TAG_RE = re.compile(r"</?[A-Za-z][A-Za-z0-9-]*(?:\s[^<>\n]*)?/?>")
BARE_URL_RE = re.compile(r"\b(?:https?|ftp)://[A-Za-z0-9\-._~:/?#@!$&'*+,;=%]*[A-Za-z0-9\-_~/#@$&*+=%]")

# Structured lines (front matter, TOML and YAML files)
YAML_LINE_RE = re.compile(
    r"^(?P<prefix>[ \t]*(?:-[ \t]+)?(?:(?P<key>[\w.-]+)[ \t]*:[ \t]+)?)"
    r"(?P<value>\"[^\"\n]*\"|'[^'\n]*'|[^#\n]*?)(?P<suffix>[ \t]*(?:#.*)?)$"
)
TOML_LINE_RE = re.compile(
    r"^(?P<prefix>[ \t]*(?P<key>[\w.-]+|\"[^\"\n]*\")[ \t]*=[ \t]*)"
    r"(?P<value>\"[^\"\n]*\"|'[^'\n]*')(?P<suffix>[ \t]*(?:#.*)?)$"
)


def token_pattern(keyword: str = "id") -> re.Pattern[str]:
    """Regex matching placeholder tokens for a keyword."""
    return re.compile(rf"\[{re.escape(keyword)}\d+\]")


def find_tokens(text: str, keyword: str = "id") -> list[str]:
    """All placeholder tokens in text, in order of appearance."""
    return token_pattern(keyword).findall(text)


def choose_keyword(text: str) -> str:
    """Pick a token keyword that cannot collide with literal source text."""
    for keyword in TOKEN_KEYWORDS:
        if not token_pattern(keyword).search(text):
            return keyword
    n = 0
    while token_pattern(f"p{n}x").search(text):
        n += 1
    return f"p{n}x"


def has_prose(text: str, keyword: str = "id") -> bool:
    """Whether text contains anything worth translating."""
    stripped = token_pattern(keyword).sub("", text)
    return any(ch.isalpha() for ch in stripped)


@dataclass
class MaskedText:
    """Text with non-translatable spans replaced by tokens."""

    text: str
    placeholders: dict[str, str] = field(default_factory=dict)
    keyword: str = "id"

    @property
    def top_level_tokens(self) -> set[str]:
        """Tokens that appear in the masked text rather than inside other spans."""
        nested: set[str] = set()
        pattern = token_pattern(self.keyword)
        for original in self.placeholders.values():
            nested.update(pattern.findall(original))
        return set(self.placeholders) - nested

    def restore(self, text: str) -> str:
        """Restore placeholders into (translated) text."""
        return restore(text, self.placeholders, self.keyword)


class _Masker:
    """Allocates tokens and records the spans they stand for."""

    def __init__(self, keyword: str):
        self.keyword = keyword
        self.placeholders: dict[str, str] = {}

    def token(self, original: str) -> str:
        token = f"[{self.keyword}{len(self.placeholders)}]"
        self.placeholders[token] = original
        return token

    def sub(self, pattern: re.Pattern[str], text: str) -> str:
        return pattern.sub(lambda m: self.token(m.group(0)), text)

    def sub_links(self, text: str) -> str:
        """
        Mask link targets and reference definitions.

        A bracket that closes a token is not a link label, so the prose after
        masked inline code such as "[id0](recommended)" or "[id0]: build"
        stays translatable.
        """
        token = token_pattern(self.keyword)
        token_end = re.compile(rf"{token.pattern}\Z")

        def link_target(m: re.Match[str]) -> str:
            if token_end.search(text, max(0, m.start() - 32), m.start()):
                return m.group(0)
            return self.token(m.group(0))

        masked = LINK_TARGET_RE.sub(link_target, text)

        def reference_def(m: re.Match[str]) -> str:
            if token.fullmatch(m.group("label")):
                return m.group(0)
            return self.token(m.group(0))

        return REFERENCE_DEF_RE.sub(reference_def, masked)

    def masked_line(self, line: str, match: re.Match[str] | None, translatable: bool) -> str:
        """Keep only the inner value of a structured line as prose."""
        if not line.strip():
            return line
        if match is None or not translatable:
            return self.token(line)

        value = match.group("value")
        quote = value[0] if value[:1] in ("'", '"') else ""
        inner = value[1:-1] if quote else value
        head = match.group("prefix") + quote
        tail = quote + match.group("suffix")

        parts = [self.token(head)] if head else []
        parts.append(inner)
        if tail:
            parts.append(self.token(tail))
        return "".join(parts)


def _looks_like_prose(value: str) -> bool:
    """Heuristic for structured values: words or non-ASCII letters."""
    if not any(ch.isalpha() for ch in value):
        return False
    return bool(re.search(r"\s", value.strip())) or any(
        ord(ch) > 127 and ch.isalpha() for ch in value
    )


def _mask_structured(
    text: str,
    masker: _Masker,
    style: str,
    keys: tuple[str, ...] | None,
) -> str:
    """
    Mask a block of TOML or YAML lines.

    With `keys`, only values of those keys stay translatable; without, any
    value that looks like prose does.
    """
    line_re = TOML_LINE_RE if style == "toml" else YAML_LINE_RE
    lines = []
    for line in text.split("\n"):
        match = line_re.match(line)
        translatable = False
        if match is not None:
            key = (match.group("key") or "").strip('"')
            if style == "yaml" and not key and not line.lstrip().startswith("-"):
                match = None
            else:
                value = match.group("value")
                inner = value[1:-1] if value[:1] in ("'", '"') else value
                if keys is not None:
                    translatable = key in keys and any(ch.isalpha() for ch in inner)
                else:
                    translatable = _looks_like_prose(inner)
        lines.append(masker.masked_line(line, match, translatable))
    return "\n".join(lines)


def _mask_front_matter(text: str, masker: _Masker, keys: tuple[str, ...]) -> str:
    match = FRONT_MATTER_RE.match(text)
    if match is None:
        return text

    style = "toml" if match.group("delim") == "+++" else "yaml"
    parts = [masker.token(match.group("open"))]
    body = match.group("body")
    if body is not None:
        parts.append(_mask_structured(body, masker, style, keys))
    parts.append(masker.token(match.group("close")))
    return "\n".join(parts) + text[match.end() :]


def mask(
    text: str,
    kind: str = "markdown",
    front_matter_keys: tuple[str, ...] = ("title", "description", "summary"),
) -> MaskedText:
    """
    Replace non-translatable spans with placeholder tokens.

    Args:
        text: Source document.
        kind: Content kind (markdown, toml, yaml, text).
        front_matter_keys: Front-matter keys whose values are translated.

    Returns:
        MaskedText holding the masked text and the token -> span map.
    """
    keyword = choose_keyword(text)
    masker = _Masker(keyword)

    if kind == "markdown":
        masked = _mask_front_matter(text, masker, front_matter_keys)
        for pattern in (
            FENCED_CODE_RE,
            HTML_COMMENT_RE,
            INLINE_CODE_RE,
        ):
            masked = masker.sub(pattern, masked)
        masked = masker.sub_links(masked)
        for pattern in (
            AUTOLINK_RE,
            HTML_TAG_RE,
            BARE_URL_RE,
        ):
            masked = masker.sub(pattern, masked)
    elif kind in ("toml", "yaml"):
        masked = _mask_structured(text, masker, kind, None)
    else:
        masked = masker.sub(BARE_URL_RE, text)

    return MaskedText(text=masked, placeholders=masker.placeholders, keyword=keyword)


def restore(text: str, placeholders: dict[str, str], keyword: str = "id") -> str:
    """
    Substitute placeholder tokens with the spans they stand for.

    Raises:
        AssemblyError: If a top-level token is missing, duplicated or unknown.
    """
    pattern = token_pattern(keyword)
    masked = MaskedText(text="", placeholders=placeholders, keyword=keyword)
    expected = masked.top_level_tokens
    counts = Counter(pattern.findall(text))

    missing = sorted(t for t in expected if counts[t] == 0)
    duplicated = sorted(t for t, n in counts.items() if n > 1)
    unknown = sorted(t for t in counts if t not in expected)
    if missing or duplicated or unknown:
        raise AssemblyError(
            "placeholder mismatch",
            {"missing": missing, "duplicated": duplicated, "unknown": unknown},
        )

    def expand(match: re.Match[str]) -> str:
        return pattern.sub(expand, placeholders[match.group(0)])

    return pattern.sub(expand, text)

"""Whitelist sanitizer for Asana rich text.

Asana validates rich text as XML against a small tag vocabulary and rejects
the whole write on anything else. The sanitizer walks the string once and
neutralizes every `<` that does not open or close an allowed tag, so stray
markup reaches Asana as text instead of failing the request.
"""

from __future__ import annotations

import re

ALLOWED_TAGS: frozenset[str] = frozenset({
    "body",
    "strong",
    "em",
    "b",
    "i",
    "u",
    "ul",
    "ol",
    "li",
    "pre",
    "code",
    "a",
    "br",
    "hr",
    "h1",
    "h2",
    "table",
    "tr",
    "td",
})

# Tag name must be followed by whitespace, ">" or "/".
_TAG_START = re.compile(r"</?([A-Za-z][A-Za-z0-9]*)(?=[\s>/])")


def sanitize_html(html: str, allowed_tags: frozenset[str] = ALLOWED_TAGS) -> str:
    """Escape every `<` that does not begin an allowed tag.

    Allowed tags are copied through up to and including their `>`. Anything
    else (unknown tag, bare `<`, or a `<` with no `>` anywhere after it) has
    just the `<` replaced by `&lt;`; scanning resumes on the next character,
    so the rest of the would-be tag stays in the output as text.
    """
    if not html:
        return html

    out: list[str] = []
    n = len(html)
    last_gt = html.rfind(">")
    i = 0

    while i < n:
        lt = html.find("<", i)
        if lt == -1:
            out.append(html[i:])
            break
        if lt > i:
            out.append(html[i:lt])
        i = lt

        if i < last_gt:
            match = _TAG_START.match(html, i)
            if match and match.group(1) in allowed_tags:
                end = html.find(">", match.end() - 1)
                out.append(html[i:end + 1])
                i = end + 1
                continue

        out.append("&lt;")
        i += 1

    return "".join(out)

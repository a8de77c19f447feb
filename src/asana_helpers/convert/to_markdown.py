"""Asana rich text to readable markdown.

Lossy only for structural attributes (cell widths, classes). Visible text,
links and mentions survive, so the result can be edited and uploaded again.
"""

from __future__ import annotations

import html as html_module
import re
from typing import Optional

PROFILE_URL = "https://app.asana.com/0/profile/{gid}"

_CODE_TOKEN = "\x02AHCODE{index}\x03"

_ATTR_RE = re.compile(r'([\w-]+)\s*=\s*"([^"]*)"')
_EMPTY_MENTION_RE = re.compile(r"<a\s([^>]*?)/>")
_LINK_RE = re.compile(r"<a(?:\s([^>]*))?>(.*?)</a>", re.DOTALL)
_INNERMOST_LI_RE = re.compile(r"<li(?:\s[^>]*)?>((?:(?!<li[\s>]).)*?)</li>", re.DOTALL)
_INNERMOST_QUOTE_RE = re.compile(r"<blockquote>((?:(?!<blockquote>).)*?)</blockquote>", re.DOTALL)
_ROW_RE = re.compile(r"<tr(?:\s[^>]*)?>(.*?)</tr>", re.DOTALL)
_CELL_RE = re.compile(r"<t[dh](?:\s[^>]*)?>(.*?)</t[dh]>", re.DOTALL)


def _attrs(raw: Optional[str]) -> dict[str, str]:
    return dict(_ATTR_RE.findall(raw or ""))


def _is_mention(attrs: dict[str, str]) -> bool:
    if "data-asana-gid" not in attrs:
        return False
    return attrs.get("data-asana-type") == "user" or "href" not in attrs


def _render_link(match: re.Match) -> str:
    attrs = _attrs(match.group(1))
    text = match.group(2).strip()
    if _is_mention(attrs):
        name = re.sub(r"<[^>]+>", "", text).lstrip("@")
        if not name:
            return PROFILE_URL.format(gid=attrs["data-asana-gid"])
        return f"@{name}"
    href = attrs.get("href")
    if not href:
        return text
    href = html_module.unescape(href)
    if not text or html_module.unescape(text) == href:
        return href
    return f"[{text}]({href})"


def _render_empty_mention(match: re.Match) -> str:
    attrs = _attrs(match.group(1))
    gid = attrs.get("data-asana-gid")
    if gid:
        return PROFILE_URL.format(gid=gid)
    return attrs.get("href", "")


def _render_list_item(match: re.Match) -> str:
    body = re.sub(r"</?(?:ul|ol)(?:\s[^>]*)?>", "\n", match.group(1)).strip("\n")
    lines = [line for line in body.split("\n") if line.strip()]
    if not lines:
        return "- \n"
    rendered = [f"- {lines[0].strip()}"] + [f"  {line}" for line in lines[1:]]
    return "\n".join(rendered) + "\n"


def _render_quote(match: re.Match) -> str:
    lines = match.group(1).strip().split("\n")
    return "\n" + "\n".join(f"> {line}" if line else ">" for line in lines) + "\n"


def _render_row(match: re.Match) -> str:
    cells = [c.strip().replace("|", "\\|") for c in _CELL_RE.findall(match.group(1))]
    return "| " + " | ".join(cells) + " |\n"


def html_to_markdown(html: Optional[str]) -> str:
    """Convert Asana rich text (`html_notes`, `html_text`) to markdown."""
    if not html:
        return ""

    text = re.sub(r"</?body>", "", html)

    code_blocks: list[str] = []

    def stash_code(match: re.Match) -> str:
        code_blocks.append(html_module.unescape(match.group(1)).strip("\n"))
        return "\n" + _CODE_TOKEN.format(index=len(code_blocks) - 1) + "\n"

    text = re.sub(r"<pre(?:\s[^>]*)?>(.*?)</pre>", stash_code, text, flags=re.DOTALL)

    # inline formatting
    text = re.sub(r"<(?:strong|b)>(.*?)</(?:strong|b)>", r"**\1**", text, flags=re.DOTALL)
    text = re.sub(r"<(?:em|i)>(.*?)</(?:em|i)>", r"*\1*", text, flags=re.DOTALL)
    text = re.sub(r"<u>(.*?)</u>", r"_\1_", text, flags=re.DOTALL)
    text = re.sub(r"<(?:s|del|strike)>(.*?)</(?:s|del|strike)>", r"~~\1~~", text, flags=re.DOTALL)
    text = re.sub(r"<code>(.*?)</code>", r"`\1`", text, flags=re.DOTALL)

    # mentions and links
    text = _EMPTY_MENTION_RE.sub(_render_empty_mention, text)
    text = _LINK_RE.sub(_render_link, text)

    # headings
    text = re.sub(
        r"<h([1-6])(?:\s[^>]*)?>(.*?)</h\1>",
        lambda m: "\n" + "#" * int(m.group(1)) + " " + m.group(2).strip() + "\n",
        text,
        flags=re.DOTALL,
    )

    # tables
    text = _ROW_RE.sub(_render_row, text)
    text = re.sub(r"</?(?:table|thead|tbody)(?:\s[^>]*)?>", "\n", text)

    # lists, innermost items first so nesting indents
    previous = None
    while previous != text:
        previous = text
        text = _INNERMOST_LI_RE.sub(_render_list_item, text)
    text = re.sub(r"</?(?:ul|ol)(?:\s[^>]*)?>", "\n", text)

    # blockquotes, innermost first
    previous = None
    while previous != text:
        previous = text
        text = _INNERMOST_QUOTE_RE.sub(_render_quote, text)

    text = re.sub(r"<hr\s*/?>", "\n---\n", text)
    text = re.sub(r"<br\s*/?>", "\n", text)

    text = re.sub(r"<[^>]+>", "", text)
    text = html_module.unescape(text)

    for index, code in enumerate(code_blocks):
        text = text.replace(_CODE_TOKEN.format(index=index), f"```\n{code}\n```", 1)

    text = re.sub(r"[ \t]+\n", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()

"""Markdown to Asana rich text conversion.

Asana's rich text fields (`html_notes`, `html_text`) accept a narrow XML
dialect: no paragraphs, only `<h1>`/`<h2>`, `<table>`/`<tr>`/`<td>` with
explicit widths, `<ol>` without `start`, and `<pre>` holding text directly.

Conversion runs markdown through mistune and then through an ordered list
of named stages. Each stage takes a ConversionContext and rewrites
`ctx.text` in place, so any stage can be exercised on its own:

    ctx = ConversionContext("<h4>x</h4>")
    downgrade_headings(ctx)
    assert ctx.text == "<h2>x</h2>"

Asana-specific markup (user mentions) is pulled out of the markdown before
parsing and swapped for opaque placeholder tokens. The tokens are delimited
by ASCII control characters, which markdown cannot produce, and are restored
right after parsing.
"""

from __future__ import annotations

import html as html_module
import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Callable, Optional

import mistune

from .sanitizer import sanitize_html

logger = logging.getLogger(__name__)

PLACEHOLDER_OPEN = "\x02AHP"
PLACEHOLDER_CLOSE = "\x03"
LIST_SPLIT_MARKER = "\x02AHLIST\x03"

# Asana renders table cells only when every cell declares its width.
TABLE_CELL_OPEN = '<td width="120" data-cell-widths="120">'

BODY_OPEN = "<body>"
BODY_CLOSE = "</body>"

_PROFILE_LINK_RE = re.compile(
    r"\[([^\]]*)\]\((https?://[^\s)]*?/profile/(\d+))[^)]*\)"
)
_BARE_PROFILE_URL_RE = re.compile(
    r"(?<![(<\w/])https?://[^\s<>()\[\]]*?/profile/(\d+)(?![\d/])"
)
_LIST_ITEM_RE = re.compile(r"^(?:[-*+]|\d+[.)])\s+\S")
_FENCE_RE = re.compile(r"^\s{0,3}(```|~~~)")
_CODE_SPAN_RE = re.compile(r"(`+).+?\1", re.DOTALL)
_TAG_RE = re.compile(r"<[^<>]*>")
_PRE_BLOCK_RE = re.compile(r"(<pre>)(.*?)(</pre>)", re.DOTALL)
_MARKDOWN_HINT_RE = re.compile(r"[*_#\[\]`]")


@dataclass
class Substitution:
    """A placeholder inserted before parsing and what replaces it after."""
    placeholder: str
    replacement: str


@dataclass
class ConversionContext:
    """Working state for one conversion."""
    text: str
    substitutions: list[Substitution] = field(default_factory=list)

    def protect(self, replacement: str) -> str:
        """Register a replacement fragment and return its placeholder token."""
        placeholder = f"{PLACEHOLDER_OPEN}{len(self.substitutions)}{PLACEHOLDER_CLOSE}"
        self.substitutions.append(Substitution(placeholder, replacement))
        return placeholder


def mention_html(user_gid: str, name: Optional[str] = None) -> str:
    """Markup for an Asana user mention."""
    if name:
        return f'<a data-asana-gid="{user_gid}">{html_module.escape(name, quote=False)}</a>'
    # Asana fills in the display name from the gid when rendering.
    return f'<a data-asana-gid="{user_gid}"/>'


@lru_cache(maxsize=1)
def _get_parser() -> mistune.Markdown:
    return mistune.create_markdown(escape=True, hard_wrap=True, plugins=["table", "url"])


def _map_text_segments(html: str, fn: Callable[[str], str]) -> str:
    """Apply fn to the text between tags, leaving tags untouched."""
    out: list[str] = []
    pos = 0
    for match in _TAG_RE.finditer(html):
        out.append(fn(html[pos:match.start()]))
        out.append(match.group(0))
        pos = match.end()
    out.append(fn(html[pos:]))
    return "".join(out)


def _map_outside_code(markdown: str, fn: Callable[[str], str]) -> str:
    """Apply fn to markdown outside fenced blocks and backtick code spans."""
    out: list[str] = []
    prose: list[str] = []
    in_fence = False

    def flush() -> None:
        if not prose:
            return
        chunk = "".join(prose)
        pos = 0
        for match in _CODE_SPAN_RE.finditer(chunk):
            out.append(fn(chunk[pos:match.start()]))
            out.append(match.group(0))
            pos = match.end()
        out.append(fn(chunk[pos:]))
        prose.clear()

    for line in markdown.splitlines(keepends=True):
        if _FENCE_RE.match(line):
            if not in_fence:
                flush()
            in_fence = not in_fence
            out.append(line)
        elif in_fence:
            out.append(line)
        else:
            prose.append(line)
    flush()
    return "".join(out)


# ============================================================================
# Stages
# ============================================================================


def extract_mentions(ctx: ConversionContext) -> None:
    """Replace profile links with placeholders for mention markup.

    `[Name](https://app.asana.com/0/profile/123)` becomes a named mention;
    a bare profile URL becomes an empty mention. Task and project URLs are
    left for the parser's autolinker. Code blocks and code spans are not
    touched.
    """
    def named(match: re.Match) -> str:
        return ctx.protect(mention_html(match.group(3), match.group(1)))

    def bare(match: re.Match) -> str:
        return ctx.protect(mention_html(match.group(1)))

    def replace(segment: str) -> str:
        return _BARE_PROFILE_URL_RE.sub(bare, _PROFILE_LINK_RE.sub(named, segment))

    ctx.text = _map_outside_code(ctx.text, replace)


def mark_list_splits(ctx: ConversionContext) -> None:
    """Put a marker paragraph between top-level list items split by blank lines.

    The marker forces the parser to emit separate lists, and is turned back
    into a newline once paragraphs are gone.
    """
    lines = ctx.text.split("\n")
    out: list[str] = []
    in_fence = False
    pending_blank = 0
    prev_is_item = False

    for line in lines:
        if _FENCE_RE.match(line):
            in_fence = not in_fence

        if not in_fence and not line.strip():
            pending_blank += 1
            continue

        is_item = not in_fence and bool(_LIST_ITEM_RE.match(line))
        if pending_blank:
            if prev_is_item and is_item:
                out.extend(["", LIST_SPLIT_MARKER, ""])
            else:
                out.extend([""] * pending_blank)
            pending_blank = 0

        out.append(line)
        prev_is_item = is_item

    out.extend([""] * pending_blank)
    ctx.text = "\n".join(out)


def render_markdown(ctx: ConversionContext) -> None:
    """Run mistune with hard line breaks, tables and autolinks."""
    ctx.text = _get_parser()(ctx.text)


def restore_placeholders(ctx: ConversionContext) -> None:
    """Swap every placeholder back, in insertion order, exactly once."""
    for sub in ctx.substitutions:
        if sub.placeholder not in ctx.text:
            logger.warning("Placeholder lost during markdown parsing", extra={"placeholder": sub.placeholder})
            continue
        ctx.text = ctx.text.replace(sub.placeholder, sub.replacement, 1)


_ENTITY_DECODES = {
    "&quot;": '"',
    "&#34;": '"',
    "&#39;": "'",
    "&#x27;": "'",
    "&#x2F;": "/",
    "&#47;": "/",
}
_ENTITY_RE = re.compile("|".join(re.escape(e) for e in _ENTITY_DECODES))


def normalize_entities(ctx: ConversionContext) -> None:
    """Decode quote, apostrophe and slash entities in text.

    `&lt;`, `&gt;` and `&amp;` stay encoded. Attribute values are not touched.
    """
    ctx.text = _map_text_segments(
        ctx.text,
        lambda s: _ENTITY_RE.sub(lambda m: _ENTITY_DECODES[m.group(0)], s),
    )


def flatten_code_blocks(ctx: ConversionContext) -> None:
    """`<pre><code class="language-x">...</code></pre>` -> `<pre>...</pre>`."""
    def repl(match: re.Match) -> str:
        body = match.group(1)
        if body.endswith("\n"):
            body = body[:-1]
        return f"<pre>{body}</pre>"

    ctx.text = re.sub(r"<pre><code(?:\s[^>]*)?>(.*?)</code></pre>", repl, ctx.text, flags=re.DOTALL)


def strip_list_start(ctx: ConversionContext) -> None:
    ctx.text = re.sub(r"<ol\s[^>]*>", "<ol>", ctx.text)


def reshape_tables(ctx: ConversionContext) -> None:
    """Drop thead/tbody, turn th into td, and give every cell its width."""
    text = re.sub(r"</?(?:thead|tbody)>\s*", "", ctx.text)
    text = re.sub(r"<th(?:\s[^>]*)?>", TABLE_CELL_OPEN, text)
    text = text.replace("</th>", "</td>")
    text = re.sub(r"<td(?:\s[^>]*)?>", TABLE_CELL_OPEN, text)
    text = re.sub(
        r"(<table>|</table>|<tr>|</tr>|</td>)\s+(?=<(?:/?table|/?tr|td)[\s>])",
        r"\1",
        text,
    )
    ctx.text = text


def normalize_line_breaks(ctx: ConversionContext) -> None:
    ctx.text = re.sub(r"<br\s*/?>\n?", "\n", ctx.text)


def normalize_horizontal_rules(ctx: ConversionContext) -> None:
    ctx.text = re.sub(r"<hr\s*/?>", "<hr/>", ctx.text)


def downgrade_headings(ctx: ConversionContext) -> None:
    """h3-h6 become h2; heading attributes are dropped."""
    text = re.sub(r"<h[3-6](?:\s[^>]*)?>", "<h2>", ctx.text)
    text = re.sub(r"</h[3-6]>", "</h2>", text)
    ctx.text = re.sub(r"<h([12])\s[^>]*>", r"<h\1>", text)


def remove_paragraphs(ctx: ConversionContext) -> None:
    """Remove `<p>` while keeping visual separation.

    heading + heading: no blank line. heading + list: no blank line.
    heading + paragraph: one newline. Every other paragraph boundary: a
    blank line.
    """
    text = re.sub(r"(</h[12]>)\s*(?=<h[12]>)", r"\1", ctx.text)
    text = re.sub(r"(</h[12]>)\s*(?=<(?:ul|ol)>)", r"\1", text)
    text = re.sub(r"(</h[12]>)\s*<p>", "\\1\n", text)
    text = re.sub(r"</p>\s*", "\n\n", text)
    ctx.text = text.replace("<p>", "")


_NESTED_BLOCKQUOTE_RE = re.compile(
    r"<blockquote>((?:(?!<blockquote>).)*?)</blockquote>\s*", re.DOTALL
)


def flatten_blockquotes(ctx: ConversionContext) -> None:
    """Blockquotes become `> ` prefixed text lines (innermost first)."""
    def repl(match: re.Match) -> str:
        lines = match.group(1).strip().split("\n")
        quoted = "\n".join(f"&gt; {line}" if line else "&gt;" for line in lines)
        return quoted + "\n\n"

    previous = None
    while previous != ctx.text:
        previous = ctx.text
        ctx.text = _NESTED_BLOCKQUOTE_RE.sub(repl, ctx.text)


def remove_list_split_markers(ctx: ConversionContext) -> None:
    ctx.text = re.sub(r"\s*" + re.escape(LIST_SPLIT_MARKER) + r"\s*", "\n", ctx.text)


def _collapse_outside_pre(text: str) -> str:
    # list markup
    text = re.sub(r"(<(?:ul|ol)>)\s+", r"\1", text)
    text = re.sub(r"\s+(</(?:ul|ol)>)", r"\1", text)
    text = re.sub(r"(</li>)\s+(?=<li>|</?(?:ul|ol)>)", r"\1", text)
    text = re.sub(r"<li>\s+", "<li>", text)
    text = re.sub(r"\s+</li>", "</li>", text)
    # nested list directly inside an item
    text = re.sub(r"(<li>(?:(?!</?li>).)*?)\s+(?=<(?:ul|ol)>)", r"\1", text, flags=re.DOTALL)

    # blank lines around lists and code blocks
    text = re.sub(r"\n{2,}(?=<(?:ul|ol|pre)>)", "\n", text)
    text = re.sub(r"(</(?:ul|ol|pre)>)\n{2,}", "\\1\n", text)
    text = re.sub(r"(</(?:ul|ol|pre)>)\s*(?=<h[12]>)", r"\1", text)

    text = re.sub(r"[ \t]+\n", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def collapse_whitespace(ctx: ConversionContext) -> None:
    """Tighten whitespace around blocks. `<pre>` contents are preserved."""
    blocks: list[str] = []

    def stash(match: re.Match) -> str:
        blocks.append(match.group(2))
        return f"{match.group(1)}{PLACEHOLDER_OPEN}PRE{len(blocks) - 1}{PLACEHOLDER_CLOSE}{match.group(3)}"

    text = _PRE_BLOCK_RE.sub(stash, ctx.text)
    text = _collapse_outside_pre(text)
    for index, body in enumerate(blocks):
        text = text.replace(f"{PLACEHOLDER_OPEN}PRE{index}{PLACEHOLDER_CLOSE}", body, 1)
    ctx.text = text


def sanitize(ctx: ConversionContext) -> None:
    ctx.text = sanitize_html(ctx.text)


def wrap_body(ctx: ConversionContext) -> None:
    if ctx.text and not ctx.text.startswith(BODY_OPEN):
        ctx.text = f"{BODY_OPEN}{ctx.text}{BODY_CLOSE}"


Stage = tuple[str, Callable[[ConversionContext], None]]

PIPELINE: tuple[Stage, ...] = (
    ("extract_mentions", extract_mentions),
    ("mark_list_splits", mark_list_splits),
    ("render_markdown", render_markdown),
    ("restore_placeholders", restore_placeholders),
    ("normalize_entities", normalize_entities),
    ("flatten_code_blocks", flatten_code_blocks),
    ("strip_list_start", strip_list_start),
    ("reshape_tables", reshape_tables),
    ("normalize_line_breaks", normalize_line_breaks),
    ("normalize_horizontal_rules", normalize_horizontal_rules),
    ("downgrade_headings", downgrade_headings),
    ("remove_paragraphs", remove_paragraphs),
    ("flatten_blockquotes", flatten_blockquotes),
    ("remove_list_split_markers", remove_list_split_markers),
    ("collapse_whitespace", collapse_whitespace),
    ("sanitize", sanitize),
    ("wrap_body", wrap_body),
)


def markdown_to_html(markdown: Optional[str]) -> str:
    """Convert markdown to Asana rich text wrapped in `<body>`.

    Empty input yields an empty string.

    Example:
        >>> markdown_to_html("### Hello **world**")
        '<body><h2>Hello <strong>world</strong></h2></body>'
    """
    if not markdown or not markdown.strip():
        return ""

    ctx = ConversionContext(markdown.replace("\r\n", "\n"))
    for name, stage in PIPELINE:
        stage(ctx)
        if name == "collapse_whitespace" and not ctx.text:
            return ""
    return ctx.text


def has_markdown(text: str) -> bool:
    """Whether text carries markdown syntax worth converting."""
    return bool(_MARKDOWN_HINT_RE.search(text))


def prepare_task_updates(updates: dict) -> dict:
    """Move markdown `notes` into `html_notes`.

    Plain-text notes are left alone so Asana stores them verbatim.
    """
    processed = dict(updates)
    notes = processed.get("notes")
    if notes and has_markdown(notes):
        processed["html_notes"] = markdown_to_html(notes)
        del processed["notes"]
        logger.debug("Converted markdown notes to html_notes")
    return processed

"""Tests for markdown to Asana rich text conversion."""

import pytest

from asana_helpers.convert import html_to_markdown, markdown_to_html, prepare_task_updates, has_markdown
from asana_helpers.convert.to_html import (
    LIST_SPLIT_MARKER,
    PIPELINE,
    TABLE_CELL_OPEN,
    ConversionContext,
    downgrade_headings,
    extract_mentions,
    flatten_code_blocks,
    mark_list_splits,
    remove_paragraphs,
    reshape_tables,
    restore_placeholders,
)


class TestBasics:
    """Inline formatting, paragraphs and empty input."""

    def test_bold(self):
        assert markdown_to_html("**bold**") == "<body><strong>bold</strong></body>"

    def test_italic(self):
        assert markdown_to_html("*it*") == "<body><em>it</em></body>"

    @pytest.mark.parametrize("text", ["", "   ", "\n\n", None])
    def test_empty_input(self, text):
        assert markdown_to_html(text) == ""

    def test_paragraphs_keep_blank_line(self):
        assert markdown_to_html("First\n\nSecond") == "<body>First\n\nSecond</body>"

    def test_single_newline_is_hard_break(self):
        assert markdown_to_html("line one\nline two") == "<body>line one\nline two</body>"

    def test_no_paragraph_tags(self):
        html = markdown_to_html("a\n\nb\n\nc")
        assert "<p>" not in html
        assert "</p>" not in html

    def test_windows_line_endings(self):
        assert markdown_to_html("a\r\n\r\nb") == "<body>a\n\nb</body>"


class TestHeadings:
    """Only h1 and h2 exist in Asana."""

    def test_h3_becomes_h2(self):
        html = markdown_to_html("### Title")
        assert html == "<body><h2>Title</h2></body>"
        assert "<h3>" not in html

    @pytest.mark.parametrize("level", [3, 4, 5, 6])
    def test_deep_headings_become_h2(self, level):
        assert markdown_to_html("#" * level + " Deep") == "<body><h2>Deep</h2></body>"

    def test_h1_kept(self):
        assert markdown_to_html("# Top") == "<body><h1>Top</h1></body>"

    def test_docstring_example(self):
        assert markdown_to_html("### Hello **world**") == "<body><h2>Hello <strong>world</strong></h2></body>"

    def test_heading_then_paragraph_single_newline(self):
        assert markdown_to_html("# Title\nSome text") == "<body><h1>Title</h1>\nSome text</body>"

    def test_heading_then_list_no_gap(self):
        html = markdown_to_html("## Steps\n- one\n- two")
        assert html == "<body><h2>Steps</h2><ul><li>one</li><li>two</li></ul></body>"


class TestLists:
    """List structure and separation."""

    def test_ordered_list_start_removed(self):
        assert markdown_to_html("3. a\n4. b") == "<body><ol><li>a</li><li>b</li></ol></body>"

    def test_blank_line_between_items_splits_lists(self):
        html = markdown_to_html("- a\n\n- b")
        assert html.count("<ul>") == 2
        assert LIST_SPLIT_MARKER not in html
        assert "\x02" not in html
        assert "<p>" not in html

    def test_mark_list_splits_ignores_code_fences(self):
        ctx = ConversionContext("```\n- a\n\n- b\n```")
        mark_list_splits(ctx)
        assert LIST_SPLIT_MARKER not in ctx.text

    def test_mark_list_splits_between_items(self):
        ctx = ConversionContext("- a\n\n- b")
        mark_list_splits(ctx)
        assert ctx.text == f"- a\n\n{LIST_SPLIT_MARKER}\n\n- b"


class TestCodeBlocks:
    """Code blocks hold text directly inside `<pre>`."""

    def test_fenced_code_flattened(self):
        html = markdown_to_html("```python\nx = 1\n```")
        assert html == "<body><pre>x = 1</pre></body>"
        assert "<code" not in html

    def test_code_whitespace_preserved(self):
        html = markdown_to_html("```\ndef f():\n    return 1\n\n\nx\n```")
        assert "<pre>def f():\n    return 1\n\n\nx</pre>" in html

    def test_markup_in_code_is_escaped(self):
        html = markdown_to_html("```\n<div>\n```")
        assert "<pre>&lt;div&gt;</pre>" in html

    def test_inline_code(self):
        assert markdown_to_html("use `x`") == "<body>use <code>x</code></body>"


class TestTables:
    """Tables without thead/tbody/th and with fixed cell widths."""

    TABLE = "| A | B |\n|---|---|\n| 1 | 2 |"

    def test_no_header_sections(self):
        html = markdown_to_html(self.TABLE)
        for tag in ("<thead", "<tbody", "<th>", "<th "):
            assert tag not in html

    def test_every_cell_has_width(self):
        html = markdown_to_html(self.TABLE)
        assert html.count(TABLE_CELL_OPEN) == 4
        assert html.count("<td") == 4

    def test_exact_shape(self):
        cell = TABLE_CELL_OPEN
        assert markdown_to_html(self.TABLE) == (
            f"<body><table><tr>{cell}A</td>{cell}B</td></tr>"
            f"<tr>{cell}1</td>{cell}2</td></tr></table></body>"
        )


class TestMentionsAndLinks:
    """Profile links become mentions; other URLs are autolinked."""

    def test_profile_link_becomes_named_mention(self):
        html = markdown_to_html("Ping [Alice](https://app.asana.com/0/profile/12345) now")
        assert html == '<body>Ping <a data-asana-gid="12345">Alice</a> now</body>'

    def test_any_host_profile_link(self):
        html = markdown_to_html("[Alice](https://service/profile/12345)")
        assert '<a data-asana-gid="12345">Alice</a>' in html

    def test_bare_profile_url_becomes_empty_mention(self):
        html = markdown_to_html("cc https://app.asana.com/0/profile/777")
        assert '<a data-asana-gid="777"/>' in html
        assert "profile" not in html

    def test_task_url_autolinked(self):
        html = markdown_to_html("See https://app.asana.com/0/1/2")
        assert '<a href="https://app.asana.com/0/1/2">' in html

    def test_regular_link(self):
        html = markdown_to_html("[Docs](https://example.com/docs)")
        assert html == '<body><a href="https://example.com/docs">Docs</a></body>'

    def test_mention_name_is_escaped(self):
        html = markdown_to_html("[A<b>](https://app.asana.com/0/profile/1)")
        assert '<a data-asana-gid="1">A&lt;b&gt;</a>' in html

    def test_profile_url_in_code_block_stays_literal(self):
        md = "```\nsee https://app.asana.com/0/profile/5\n```"
        html = markdown_to_html(md)

        assert html == "<body><pre>see https://app.asana.com/0/profile/5</pre></body>"
        assert html_to_markdown(html) == md

    def test_profile_link_in_code_span_stays_literal(self):
        html = markdown_to_html(
            "use `[Al](https://app.asana.com/0/profile/5)` or [Bo](https://app.asana.com/0/profile/6)"
        )

        assert "<code>[Al](https://app.asana.com/0/profile/5)</code>" in html
        assert 'data-asana-gid="5"' not in html
        assert '<a data-asana-gid="6">Bo</a>' in html

    def test_extract_mentions_skips_fenced_lines_only(self):
        ctx = ConversionContext(
            "https://app.asana.com/0/profile/1\n```\nhttps://app.asana.com/0/profile/2\n```\n"
            "https://app.asana.com/0/profile/3"
        )
        extract_mentions(ctx)

        assert [s.replacement for s in ctx.substitutions] == [
            '<a data-asana-gid="1"/>',
            '<a data-asana-gid="3"/>',
        ]
        assert "https://app.asana.com/0/profile/2" in ctx.text

    def test_placeholders_never_leak(self):
        html = markdown_to_html(
            "- [Bob](https://app.asana.com/0/profile/1)\n"
            "- https://app.asana.com/0/profile/2\n"
            "# [Eve](https://app.asana.com/0/profile/3)"
        )
        assert "\x02" not in html
        assert "\x03" not in html
        assert html.count("data-asana-gid") == 3


class TestTextHandling:
    """Entities, raw HTML, quotes and rules."""

    def test_quotes_decoded_but_markup_characters_kept_encoded(self):
        html = markdown_to_html('He said "hi" & a < b')
        assert html == '<body>He said "hi" &amp; a &lt; b</body>'

    def test_raw_html_is_escaped(self):
        html = markdown_to_html("<div>x</div>")
        assert "<div>" not in html
        assert "&lt;div&gt;" in html

    def test_blockquote_flattened(self):
        assert markdown_to_html("> quoted") == "<body>&gt; quoted</body>"

    def test_strikethrough_stays_literal(self):
        assert markdown_to_html("~~x~~") == "<body>~~x~~</body>"

    def test_horizontal_rule(self):
        html = markdown_to_html("a\n\n---\n\nb")
        assert "<hr/>" in html
        assert "<hr />" not in html


class TestStages:
    """Individual pipeline stages."""

    def test_pipeline_order(self):
        names = [name for name, _ in PIPELINE]
        assert names[0] == "extract_mentions"
        assert names.index("render_markdown") < names.index("restore_placeholders")
        assert names[-2:] == ["sanitize", "wrap_body"]

    def test_downgrade_headings(self):
        ctx = ConversionContext('<h4 id="x">a</h4><h1 class="c">b</h1>')
        downgrade_headings(ctx)
        assert ctx.text == "<h2>a</h2><h1>b</h1>"

    def test_remove_paragraphs(self):
        ctx = ConversionContext("<h1>T</h1>\n<h2>S</h2>\n<p>a</p>\n<p>b</p>\n")
        remove_paragraphs(ctx)
        assert ctx.text == "<h1>T</h1><h2>S</h2>\na\n\nb\n\n"

    def test_reshape_tables(self):
        ctx = ConversionContext('<table>\n<thead>\n<tr>\n  <th style="text-align:left">A</th>\n</tr>\n</thead>\n</table>\n')
        reshape_tables(ctx)
        assert ctx.text == f"<table><tr>{TABLE_CELL_OPEN}A</td></tr></table>\n"

    def test_flatten_code_blocks(self):
        ctx = ConversionContext('<pre><code class="language-js">let a;\n</code></pre>')
        flatten_code_blocks(ctx)
        assert ctx.text == "<pre>let a;</pre>"

    def test_restore_in_insertion_order(self):
        ctx = ConversionContext("")
        first = ctx.protect("<a>1</a>")
        second = ctx.protect("<a>2</a>")
        ctx.text = f"{second} then {first}"
        restore_placeholders(ctx)
        assert ctx.text == "<a>2</a> then <a>1</a>"

    def test_extract_mentions_records_substitutions(self):
        ctx = ConversionContext("[Al](https://app.asana.com/0/profile/5) https://app.asana.com/0/profile/6")
        extract_mentions(ctx)
        assert [s.replacement for s in ctx.substitutions] == [
            '<a data-asana-gid="5">Al</a>',
            '<a data-asana-gid="6"/>',
        ]
        assert "profile" not in ctx.text


class TestPrepareTaskUpdates:
    """Markdown notes move to html_notes."""

    def test_markdown_notes_converted(self):
        result = prepare_task_updates({"name": "n", "notes": "**x**"})
        assert result == {"name": "n", "html_notes": "<body><strong>x</strong></body>"}

    def test_plain_notes_untouched(self):
        updates = {"notes": "plain words"}
        assert prepare_task_updates(updates) == updates

    def test_input_not_mutated(self):
        updates = {"notes": "# T"}
        prepare_task_updates(updates)
        assert updates == {"notes": "# T"}

    @pytest.mark.parametrize("text,expected", [
        ("plain", False),
        ("a *b*", True),
        ("snake_case", True),
        ("# h", True),
        ("[x]", True),
        ("`c`", True),
    ])
    def test_has_markdown(self, text, expected):
        assert has_markdown(text) is expected

import pytest

from boardmigrate.services.transcoder import (
    MarkupDialect,
    RewriteRule,
    TextRewritePipeline,
    snap_font_size,
    tag_map_rule,
    transcode,
)


@pytest.fixture
def pipeline():
    return TextRewritePipeline()


class TestFontSizes:
    @pytest.mark.parametrize("size,expected", [
        (8, 8), (9, 10), (14, 14), (17, 18), (20, 24), (36, 36), (50, 36),
    ])
    def test_snaps_up_to_accepted_size(self, pipeline, size, expected):
        out = pipeline.transcode("bbcode", f"[size={size}]text[/size]")
        assert out == f"[size={expected}]text[/size]"

    def test_pixel_sizes_are_converted_to_points(self):
        assert snap_font_size(24, "px", (8, 10, 12, 14, 18, 24, 36)) == 18

    def test_point_suffix_dropped(self, pipeline):
        assert pipeline.transcode("bbcode", "[size=12pt]a[/size]") == "[size=12]a[/size]"

    def test_custom_accepted_sizes(self):
        pipeline = TextRewritePipeline(accepted_font_sizes=[10, 20])
        assert pipeline.transcode("bbcode", "[size=15]a[/size]") == "[size=20]a[/size]"

    def test_html_span_size(self, pipeline):
        out = pipeline.transcode("html", '<span style="font-size: 16px">big</span>')
        assert out == "[size=12]big[/size]"


class TestMarkdown:
    def test_emphasis(self, pipeline):
        assert pipeline.transcode("markdown", "**bold** and *it*") == "[b]bold[/b] and [i]it[/i]"

    def test_paragraphs_become_empty_line(self, pipeline):
        assert pipeline.transcode("markdown", "first\n\nsecond") == "first\n\nsecond"

    def test_fenced_code_language_alias(self, pipeline):
        out = pipeline.transcode("markdown", "```js\nlet a = 1;\n```")
        assert out.startswith("[code=javascript]")
        assert "let a = 1;" in out
        assert out.endswith("[/code]")

    def test_list(self, pipeline):
        out = pipeline.transcode("markdown", "- one\n- two")
        assert out.startswith("[list]")
        assert "[*]one" in out
        assert "[*]two" in out
        assert out.endswith("[/list]")

    def test_blockquote(self, pipeline):
        out = pipeline.transcode("markdown", "> hello")
        assert out.startswith("[quote]")
        assert "hello" in out
        assert out.endswith("[/quote]")
        assert "<" not in out

    def test_link_entities_decoded(self, pipeline):
        out = pipeline.transcode("markdown", "[site](https://example.com/?a=1&b=2)")
        assert out == "[url='https://example.com/?a=1&b=2']site[/url]"

    def test_quote_attributes_stripped(self, pipeline):
        out = pipeline.transcode("markdown", '[quote="alice, post:3, topic:9"]\nhi\n[/quote]')
        assert "[quote]" in out
        assert "alice" not in out


class TestBBCode:
    @pytest.mark.parametrize("raw,expected", [
        ('[quote="alice"]hi[/quote]', "[quote='alice']hi[/quote]"),
        ("[quote=bob;123]x[/quote]", "[quote='bob']x[/quote]"),
        ("[php]echo 1;[/php]", "[code=php]echo 1;[/code]"),
        ("[code=py]x[/code]", "[code=python]x[/code]"),
        ("[center]x[/center]", "[align=center]x[/align]"),
        ('[url="http://a.example"]a[/url]', "[url='http://a.example']a[/url]"),
        ("[img width=300 height=200]http://x/y.png[/img]", "[img='http://x/y.png',none,300][/img]"),
        ("[attach]12[/attach]", "[attach=12][/attach]"),
        ("[attach=config]5[/attach]", "[attach=5][/attach]"),
        ('[attach=json]{"data-attachmentid":9}[/attach]', "[attach=9][/attach]"),
        ("[video=youtube;abc]http://y[/video]", "[media]http://y[/media]"),
        ("[table=width:100%]x[/table]", "[table]x[/table]"),
    ])
    def test_fixups(self, pipeline, raw, expected):
        assert pipeline.transcode("bbcode", raw) == expected

    def test_line_endings_normalized(self, pipeline):
        assert pipeline.transcode("bbcode", "a\r\nb\rc") == "a\nb\nc"


class TestHTML:
    def test_paragraphs_and_breaks(self, pipeline):
        assert pipeline.transcode("html", "<p>One</p><p>Two<br>Three</p>") == "One\n\nTwo\nThree"

    def test_headings(self, pipeline):
        assert pipeline.transcode("html", "<h1>Title</h1>") == "[size=24][b]Title[/b][/size]"

    def test_image(self, pipeline):
        assert pipeline.transcode("html", '<img alt="x" src="http://a/b.png">') == "[img]http://a/b.png[/img]"


class TestUploads:
    def test_resolved_upload_becomes_attachment(self, pipeline, upload_token):
        digest, token = upload_token(b"picture")
        seen = []

        def resolver(sha1):
            seen.append(sha1)
            return 7 if sha1 == digest else None

        out = pipeline.transcode("bbcode", f"see [img]upload://{token}.png[/img]", resolver)
        assert out == "see [attach=7][/attach]"
        assert seen == [digest]

    def test_markdown_image_upload(self, pipeline, upload_token):
        digest, token = upload_token(b"diagram")
        out = pipeline.transcode("markdown", f"![pic](upload://{token}.png)", {digest: 3}.get)
        assert out == "[attach=3][/attach]"

    def test_unresolved_upload_removed(self, pipeline, upload_token):
        _, token = upload_token(b"gone")
        out = pipeline.transcode(
            "bbcode", f"before [img]upload://{token}.png[/img] after", lambda sha1: None
        )
        assert out == "before  after"
        assert "upload://" not in out
        assert "[img]" not in out

    def test_malformed_token_removed_without_lookup(self, pipeline):
        calls = []
        out = pipeline.transcode(
            "bbcode", "x [url='upload://ab-cd.zip']file[/url] y", lambda sha1: calls.append(sha1)
        )
        assert out == "x  y"
        assert calls == []

    def test_no_resolver_removes_reference(self, pipeline, upload_token):
        _, token = upload_token(b"anything")
        assert pipeline.transcode("bbcode", f"[img]upload://{token}.jpg[/img]") == ""


class TestProperties:
    @pytest.mark.parametrize("dialect,raw", [
        ("markdown", "**Hello** _world_\n\n- a\n- b\n\n> quoted\n\n```python\nprint(1)\n```"),
        ("markdown", "[link](http://example.com) and `code`"),
        ("html", "<p><b>bold</b></p><p><a href=\"http://x\">x</a></p><ol><li>one</li></ol>"),
        ("bbcode", '[quote="alice"]hi[/quote][size=20]big[/size][left]l[/left]'),
    ])
    def test_output_is_fixed_point(self, pipeline, dialect, raw):
        once = pipeline.transcode(dialect, raw)
        assert pipeline.transcode("bbcode", once) == once

    @pytest.mark.parametrize("dialect", list(MarkupDialect))
    @pytest.mark.parametrize("raw", ["[quote=", "<p><b>unclosed", "[size=abc]x", "**", "[img]upload://", "<<>>"])
    def test_malformed_input_never_raises(self, pipeline, dialect, raw):
        assert isinstance(pipeline.transcode(dialect, raw), str)

    def test_empty_input(self, pipeline):
        assert pipeline.transcode("markdown", "") == ""
        assert pipeline.transcode("bbcode", None) == ""

    def test_module_level_transcode(self):
        assert transcode("bbcode", "[size=20]a[/size]") == "[size=24]a[/size]"

    def test_unknown_dialect_rejected(self, pipeline):
        with pytest.raises(ValueError):
            pipeline.transcode("textile", "x")


def test_rule_without_match_leaves_text_unchanged():
    rule = RewriteRule.compile("strip_foo", r"\[foo\]", "")
    assert rule.apply("nothing to see") == "nothing to see"
    assert rule.apply("a[foo]b") == "ab"


def test_tag_map_rule_is_single_pass():
    rule = tag_map_rule("swap", {"[a]": "[b]", "[b]": "[a]"})
    assert rule.apply("[a][B]") == "[b][a]"


def test_stage_order(pipeline):
    names = [name for name, _ in pipeline.stages("markdown")]
    assert names == ["conversion", "fixups", "attachments", "paragraphs"]

"""Content transcoding from legacy markup dialects into canonical BBCode.

The pipeline is an ordered list of named, independent rewrite rules grouped
into four stages:

1. base conversion (Markdown is parsed to HTML, HTML constructs become BBCode)
2. structural fixups (quotes, code languages, alignment, media, font sizes)
3. embedded upload resolution (``upload://<base62>`` references)
4. paragraph normalization

A rule whose pattern does not match leaves the text unchanged, so malformed
input passes through instead of raising.
"""

import html
import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Match, Optional, Pattern, Tuple, Union

import markdown

from . import base62
from ..errors import Base62DecodeError

logger = logging.getLogger(__name__)

DEFAULT_FONT_SIZES = (8, 10, 12, 14, 18, 24, 36)

# Maps a SHA-1 hex digest to the identifier of the stored upload, or None.
AttachmentResolver = Callable[[str], Optional[Any]]

CODE_LANGUAGE_ALIASES: Dict[str, str] = {
    "js": "javascript",
    "jsx": "javascript",
    "ts": "typescript",
    "py": "python",
    "python3": "python",
    "rb": "ruby",
    "sh": "bash",
    "shell": "bash",
    "zsh": "bash",
    "console": "bash",
    "c++": "cpp",
    "cxx": "cpp",
    "cs": "csharp",
    "c#": "csharp",
    "yml": "yaml",
    "md": "markdown",
    "htm": "html",
    "xhtml": "html",
    "text": "plain",
    "txt": "plain",
    "plaintext": "plain",
}


class MarkupDialect(str, Enum):
    """Source markup dialects."""
    MARKDOWN = "markdown"
    BBCODE = "bbcode"
    HTML = "html"


@dataclass(frozen=True)
class RewriteRule:
    """A named pattern plus replacement string or callback."""
    name: str
    pattern: Pattern
    replacement: Union[str, Callable[[Match], str]]

    def apply(self, text: str) -> str:
        return self.pattern.sub(self.replacement, text)

    @classmethod
    def compile(
        cls,
        name: str,
        pattern: str,
        replacement: Union[str, Callable[[Match], str]],
        flags: int = 0
    ) -> "RewriteRule":
        return cls(name=name, pattern=re.compile(pattern, flags), replacement=replacement)


def tag_map_rule(name: str, mapping: Dict[str, str], flags: int = re.IGNORECASE) -> RewriteRule:
    """Build a single-pass literal replacement rule from ``mapping``."""
    lookup = {key.lower(): value for key, value in mapping.items()}
    alternatives = sorted(mapping, key=len, reverse=True)
    pattern = "|".join(re.escape(key) for key in alternatives)
    return RewriteRule.compile(name, pattern, lambda m: lookup[m.group(0).lower()], flags)


def snap_font_size(value: float, unit: Optional[str], accepted: Tuple[int, ...]) -> int:
    """Return the smallest accepted size not below ``value``, else the largest."""
    if unit == "px":
        # 1pt is roughly 4/3px
        value = value * 3 / 4
    for size in accepted:
        if size >= value:
            return size
    return accepted[-1]


def _quote_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


# Stage 1 helpers: HTML constructs into BBCode.

_EMPHASIS_TAGS = {
    "strong": "b",
    "b": "b",
    "em": "i",
    "i": "i",
    "del": "s",
    "strike": "s",
    "s": "s",
    "u": "u",
}

_HEADING_SIZES = {"1": 24, "2": 18, "3": 14}


def _emphasis(match: Match) -> str:
    return f"[{match.group(1)}{_EMPHASIS_TAGS[match.group(2).lower()]}]"


def _heading(match: Match) -> str:
    content = f"[b]{match.group(2)}[/b]"
    size = _HEADING_SIZES.get(match.group(1))
    if size:
        return f"[size={size}]{content}[/size]"
    return content


def _link(match: Match) -> str:
    return f"[url='{_quote_value(match.group(1))}']"


def _html_rules() -> List[RewriteRule]:
    return [
        RewriteRule.compile(
            "code_block_language",
            r'<pre><code class="(?:language-|lang-)?([A-Za-z0-9_+#-]+)">',
            r"[code=\1]",
        ),
        RewriteRule.compile("code_block_open", r"<pre(?:\s[^>]*)?>(?:<code>)?", "[code]"),
        RewriteRule.compile("code_block_close", r"(?:</code>)?</pre>", "[/code]"),
        tag_map_rule("inline_code", {"<code>": "[tt]", "</code>": "[/tt]"}),
        RewriteRule.compile(
            "emphasis",
            r"<(/?)(strong|strike|b|em|i|del|s|u)(?:\s[^>]*)?>",
            _emphasis,
            re.IGNORECASE,
        ),
        RewriteRule.compile(
            "headings", r"<h([1-6])(?:\s[^>]*)?>(.*?)</h\1>", _heading, re.IGNORECASE | re.DOTALL
        ),
        RewriteRule.compile("list_unordered", r"<ul(?:\s[^>]*)?>", "[list]", re.IGNORECASE),
        RewriteRule.compile("list_ordered", r"<ol(?:\s[^>]*)?>", "[list=1]", re.IGNORECASE),
        RewriteRule.compile("list_close", r"</[uo]l>", "[/list]", re.IGNORECASE),
        RewriteRule.compile("list_item", r"<li(?:\s[^>]*)?>", "[*]", re.IGNORECASE),
        RewriteRule.compile("list_item_close", r"</li>", "", re.IGNORECASE),
        RewriteRule.compile("blockquote", r"<blockquote(?:\s[^>]*)?>", "[quote]", re.IGNORECASE),
        RewriteRule.compile("blockquote_close", r"</blockquote>", "[/quote]", re.IGNORECASE),
        RewriteRule.compile(
            "font_size_span",
            r'<span style="font-size:\s*(\d+)px;?">(.*?)</span>',
            r"[size=\1px]\2[/size]",
            re.IGNORECASE | re.DOTALL,
        ),
        RewriteRule.compile(
            "image", r'<img\b[^>]*?\ssrc="([^"]*)"[^>]*>', r"[img]\1[/img]", re.IGNORECASE
        ),
        RewriteRule.compile("link", r'<a\b[^>]*?\shref="([^"]*)"[^>]*>', _link, re.IGNORECASE),
        RewriteRule.compile("link_close", r"</a>", "[/url]", re.IGNORECASE),
    ]


# Stage 2 helpers.

def _quote_author(match: Match) -> str:
    return f"[quote='{_quote_value(match.group(1).strip())}']"


def _img2_json(match: Match) -> str:
    try:
        payload = json.loads(match.group(1))
    except ValueError:
        return match.group(0)
    if isinstance(payload, dict) and payload.get("src"):
        return f"[img]{payload['src']}[/img]"
    return match.group(0)


def _attach_variant(match: Match) -> str:
    if match.group(1):
        try:
            payload = json.loads(match.group(1))
        except ValueError:
            return ""
        attachment_id = payload.get("data-attachmentid") if isinstance(payload, dict) else None
        if not attachment_id:
            return ""
        return f"[attach={attachment_id}][/attach]"
    return f"[attach={match.group(2)}][/attach]"


def _code_language(match: Match) -> str:
    language = match.group(1).lower()
    return f"[code={CODE_LANGUAGE_ALIASES.get(language, language)}]"


def _markdown_fixups() -> List[RewriteRule]:
    return [
        # [quote="user, post:1, topic:2"] carries post references we cannot keep
        RewriteRule.compile("quote_strip_attributes", r"\[quote[=\s][^\]]*\]", "[quote]"),
    ]


def _bbcode_fixups() -> List[RewriteRule]:
    return [
        RewriteRule.compile(
            "quote_author_double_quoted", r'\[quote="([^"]+?)"[^\]]*\]', _quote_author, re.IGNORECASE
        ),
        RewriteRule.compile(
            "quote_author_post_reference",
            r"\[quote=([^'\"\];][^\];]*?)(?:;n?\d+)?\]",
            _quote_author,
            re.IGNORECASE,
        ),
        RewriteRule.compile("url_double_quoted", r'\[url="([^"]+)"\]', _link, re.IGNORECASE),
        RewriteRule.compile(
            "image_dimensions",
            r"\[img width=(\d+) height=\d+\](.*?)\[/img\]",
            r"[img='\2',none,\1][/img]",
            re.IGNORECASE,
        ),
        RewriteRule.compile("image_size_attribute", r"\[img size=[^\]]*\]", "[img]", re.IGNORECASE),
        RewriteRule.compile("image_json", r"\[img2=json\](.*?)\[/img2\]", _img2_json, re.IGNORECASE),
        RewriteRule.compile(
            "attach_variants",
            r"\[attach=(?:json\](\{.*?\})|config\]([0-9]+))\[/attach\]",
            _attach_variant,
            re.IGNORECASE,
        ),
        RewriteRule.compile(
            "attach_plain", r"\[attach\]([0-9]+)\[/attach\]", r"[attach=\1][/attach]", re.IGNORECASE
        ),
        RewriteRule.compile("table_attributes", r"\[table=[^\]]*\]", "[table]", re.IGNORECASE),
    ]


def _markdown_preparse() -> List[RewriteRule]:
    return [
        # "> ```" opens a fenced block inside a quote that the parser would not see
        RewriteRule.compile("quoted_code_fence", r"(^|\n)> (```)", r"\1\2"),
    ]


def _paragraph_rules() -> List[RewriteRule]:
    return [
        RewriteRule.compile(
            "paragraph_break", r"</p>\s*<p(?:\s[^>]*)?>", "\n\n", re.IGNORECASE
        ),
        RewriteRule.compile("paragraph_tags", r"</?p(?:\s[^>]*)?>", "", re.IGNORECASE),
        RewriteRule.compile("line_break", r"<br\s*/?>\n?", "\n", re.IGNORECASE),
    ]


class TextRewritePipeline:
    """
    Transcodes message bodies into canonical BBCode.

    One pipeline is built per run and passed to the driver; it owns the
    Markdown parser instance and the compiled rule lists for every dialect.
    """

    def __init__(self, accepted_font_sizes: Iterable[int] = DEFAULT_FONT_SIZES):
        """
        Initialize the pipeline.

        Args:
            accepted_font_sizes: Sizes the destination accepts in [size=N]
        """
        self.accepted_font_sizes = tuple(sorted(accepted_font_sizes))
        if not self.accepted_font_sizes:
            raise ValueError("At least one accepted font size is required")

        self._markdown = markdown.Markdown(extensions=["fenced_code"])
        html_rules = _html_rules()
        shared = self._shared_fixups()

        self._conversion = {
            MarkupDialect.MARKDOWN: _markdown_preparse(),
            MarkupDialect.HTML: html_rules,
            MarkupDialect.BBCODE: [],
        }
        self._html_conversion = html_rules
        self._fixups = {
            MarkupDialect.MARKDOWN: _markdown_fixups() + shared,
            MarkupDialect.HTML: shared,
            MarkupDialect.BBCODE: _bbcode_fixups() + shared,
        }
        self._paragraphs = {
            MarkupDialect.MARKDOWN: _paragraph_rules(),
            MarkupDialect.HTML: _paragraph_rules(),
            MarkupDialect.BBCODE: [RewriteRule.compile("line_endings", r"\r\n?", "\n")],
        }

    def _shared_fixups(self) -> List[RewriteRule]:
        alignments = {}
        for direction in ("left", "right", "center", "justify"):
            alignments[f"[{direction}]"] = f"[align={direction}]"
            alignments[f"[/{direction}]"] = "[/align]"

        return [
            tag_map_rule("alignment_tags", alignments),
            tag_map_rule(
                "code_language_tags",
                {
                    "[php]": "[code=php]",
                    "[/php]": "[/code]",
                    "[html]": "[code=html]",
                    "[/html]": "[/code]",
                    "[sql]": "[code=sql]",
                    "[/sql]": "[/code]",
                },
            ),
            RewriteRule.compile(
                "code_language_alias", r"\[code=[\"']?([A-Za-z0-9_+#-]+)[\"']?\]", _code_language
            ),
            RewriteRule.compile(
                "video_provider", r"\[video=[a-z]+;[a-z0-9_-]+\]", "[media]", re.IGNORECASE
            ),
            tag_map_rule("video_tags", {"[video]": "[media]", "[/video]": "[/media]"}),
            RewriteRule.compile(
                "font_size",
                r"\[size=['\"]?(\d+)(px|pt)?['\"]?\]",
                self._font_size,
                re.IGNORECASE,
            ),
        ]

    def _font_size(self, match: Match) -> str:
        unit = match.group(2).lower() if match.group(2) else None
        size = snap_font_size(int(match.group(1)), unit, self.accepted_font_sizes)
        return f"[size={size}]"

    def attachment_rules(self, resolver: Optional[AttachmentResolver]) -> List[RewriteRule]:
        """Rules replacing upload:// references, bound to ``resolver``."""

        def resolve(token: str) -> Optional[str]:
            if resolver is None:
                return None
            try:
                digest = base62.decode_sha1(token.split(".", 1)[0])
            except Base62DecodeError:
                logger.debug(f"Discarding malformed upload reference {token!r}")
                return None
            attachment_id = resolver(digest)
            if attachment_id is None:
                logger.debug(f"No stored upload matches {digest}")
                return None
            return f"[attach={attachment_id}][/attach]"

        return [
            RewriteRule.compile(
                "upload_image",
                r"\[img\]upload://([^\[\]'\s]*)\[/img\]",
                lambda m: resolve(m.group(1)) or "",
            ),
            RewriteRule.compile(
                "upload_link",
                r"\[url='upload://([^\[\]'\s]*)'\].*?\[/url\]",
                lambda m: resolve(m.group(1)) or "",
                re.DOTALL,
            ),
        ]

    def stages(
        self,
        dialect: Union[str, MarkupDialect],
        resolver: Optional[AttachmentResolver] = None
    ) -> List[Tuple[str, List[RewriteRule]]]:
        """Return the ordered (stage name, rules) list for ``dialect``."""
        dialect = MarkupDialect(dialect)
        return [
            ("conversion", self._conversion[dialect]),
            ("fixups", self._fixups[dialect]),
            ("attachments", self.attachment_rules(resolver)),
            ("paragraphs", self._paragraphs[dialect]),
        ]

    def transcode(
        self,
        dialect: Union[str, MarkupDialect],
        raw_text: Optional[str],
        attachment_resolver: Optional[AttachmentResolver] = None
    ) -> str:
        """
        Transcode ``raw_text`` from ``dialect`` into canonical BBCode.

        Args:
            dialect: Source markup dialect
            raw_text: Text as stored in the source
            attachment_resolver: Lookup from SHA-1 digest to stored upload id

        Returns:
            The canonical text
        """
        if not raw_text:
            return ""

        dialect = MarkupDialect(dialect)
        text = raw_text

        for stage, rules in self.stages(dialect, attachment_resolver):
            for rule in rules:
                text = rule.apply(text)
            if stage == "conversion" and dialect == MarkupDialect.MARKDOWN:
                text = self._markdown.reset().convert(text)
                for rule in self._html_conversion:
                    text = rule.apply(text)

        if dialect != MarkupDialect.BBCODE:
            text = html.unescape(text).strip()

        return text


def transcode(
    dialect: Union[str, MarkupDialect],
    raw_text: Optional[str],
    attachment_resolver: Optional[AttachmentResolver] = None,
    pipeline: Optional[TextRewritePipeline] = None
) -> str:
    """Transcode with ``pipeline`` or a pipeline with the default settings."""
    pipeline = pipeline or TextRewritePipeline()
    return pipeline.transcode(dialect, raw_text, attachment_resolver)

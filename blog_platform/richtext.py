"""
Rendering for editor documents.

Post and newsletter bodies arrive as ProseMirror-style JSON documents
produced by the browser editor::

    {"type": "doc", "content": [
        {"type": "paragraph", "content": [{"type": "text", "text": "Hi"}]}
    ]}

The rest of the platform treats the document as opaque and only uses the
pure functions below.
"""
import logging
import math

from django.utils.html import escape, format_html

from .conf import blog_settings

logger = logging.getLogger(__name__)

BLOCK_TAGS = {
    "paragraph": "p",
    "blockquote": "blockquote",
    "bulletList": "ul",
    "orderedList": "ol",
    "listItem": "li",
}

MARK_TAGS = {
    "bold": "strong",
    "italic": "em",
    "underline": "u",
    "strike": "s",
    "code": "code",
    "highlight": "mark",
}

TEXT_ALIGNMENTS = ("center", "right", "justify")

SAFE_URL_SCHEMES = ("http://", "https://", "mailto:", "/", "#")


def document_to_html(doc):
    """
    Render an editor document to HTML.

    Malformed documents render as an empty string rather than failing the
    request that saves them.
    """
    if not doc:
        return ""
    try:
        return _render_node(doc)
    except (AttributeError, TypeError, ValueError):
        logger.warning("Could not render editor document", exc_info=True)
        return ""


def extract_text(doc):
    """Return the plain text of a document, one space after each text node."""
    parts = []

    def walk(node):
        if not isinstance(node, dict):
            return
        if node.get("text"):
            parts.append(node["text"])
        for child in node.get("content") or []:
            walk(child)

    walk(doc)
    return " ".join(parts)


def word_count(doc):
    return len(extract_text(doc).split())


def reading_time(doc):
    """Estimated reading time in whole minutes, never less than one."""
    if not doc:
        return 1
    return max(1, math.ceil(word_count(doc) / blog_settings.WORDS_PER_MINUTE))


def excerpt(doc, max_length=None):
    """Plain-text excerpt truncated to ``max_length`` characters plus an ellipsis."""
    if not doc:
        return ""
    max_length = max_length or blog_settings.EXCERPT_LENGTH
    text = " ".join(extract_text(doc).split())
    if len(text) > max_length:
        return text[:max_length].strip() + "..."
    return text


def is_empty(doc):
    """True when the document has no top-level content nodes."""
    return not isinstance(doc, dict) or not doc.get("content")


def _render_node(node):
    kind = node.get("type")
    attrs = node.get("attrs") or {}

    if kind == "text":
        return _apply_marks(escape(node.get("text", "")), node.get("marks") or [])
    if kind == "hardBreak":
        return "<br>"
    if kind == "horizontalRule":
        return "<hr>"
    if kind == "image":
        src = attrs.get("src") or ""
        if not _is_safe_url(src):
            return ""
        return format_html('<img src="{}" alt="{}">', src, attrs.get("alt") or "")

    inner = "".join(_render_node(child) for child in node.get("content") or [])

    if kind == "doc":
        return inner
    if kind == "heading":
        level = min(max(int(attrs.get("level") or 1), 1), 6)
        return f"<h{level}{_align(attrs)}>{inner}</h{level}>"
    if kind == "codeBlock":
        language = attrs.get("language")
        if language:
            return format_html('<pre><code class="language-{}">', language) + inner + "</code></pre>"
        return f"<pre><code>{inner}</code></pre>"
    if kind == "orderedList":
        start = int(attrs.get("start") or 1)
        if start != 1:
            return f'<ol start="{start}">{inner}</ol>'

    tag = BLOCK_TAGS.get(kind)
    if tag is None:
        # Unknown node: keep its children
        return inner
    return f"<{tag}{_align(attrs)}>{inner}</{tag}>"


def _apply_marks(html, marks):
    for mark in marks:
        kind = mark.get("type")
        if kind == "link":
            href = (mark.get("attrs") or {}).get("href") or ""
            if _is_safe_url(href):
                html = format_html(
                    '<a href="{}" target="_blank" rel="noopener noreferrer nofollow">',
                    href,
                ) + html + "</a>"
            continue
        tag = MARK_TAGS.get(kind)
        if tag:
            html = f"<{tag}>{html}</{tag}>"
    return html


def _align(attrs):
    alignment = attrs.get("textAlign")
    if alignment in TEXT_ALIGNMENTS:
        return f' style="text-align: {alignment}"'
    return ""


def _is_safe_url(url):
    return url.strip().lower().startswith(SAFE_URL_SCHEMES)

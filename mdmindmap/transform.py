"""Markdown to mind map tree conversion."""

from __future__ import annotations

import datetime
import html
from dataclasses import dataclass, field
from typing import Any

import yaml
from markdown_it import MarkdownIt
from markdown_it.token import Token
from mdit_py_plugins.dollarmath import dollarmath_plugin
from mdit_py_plugins.front_matter import front_matter_plugin

from mdmindmap.assets import FEATURE_HLJS, FEATURE_KATEX
from mdmindmap.log import get_logger

logger = get_logger(__name__)

# Deeper than any heading level so list items always nest under headings.
LIST_ITEM_DEPTH = 7


@dataclass
class TransformResult:
    root: dict[str, Any]
    frontmatter: dict[str, Any] = field(default_factory=dict)
    features: frozenset[str] = frozenset()


def _json_safe(value: Any) -> Any:
    """YAML scalars that JSON cannot carry (dates, sets, binary) become strings."""
    if isinstance(value, dict):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def _new_node(content: str, token: Token | None = None) -> dict[str, Any]:
    node: dict[str, Any] = {"content": content, "children": []}
    if token is not None and token.map and len(token.map) == 2:
        node["payload"] = {"lines": f"{token.map[0]},{token.map[1]}"}
    return node


class Transformer:
    """Converts markdown text into a markmap-shaped tree plus frontmatter."""

    def __init__(self) -> None:
        self._md = MarkdownIt("commonmark", {"html": True, "linkify": False, "typographer": False})
        self._md.enable("table").enable("strikethrough")
        self._md.use(front_matter_plugin)
        # Parse $...$ before emphasis rules so TeX survives for KaTeX in the view.
        self._md.use(dollarmath_plugin)

        def custom_math_inline(tokens, idx, options, env):
            return f"${html.escape(tokens[idx].content)}$"

        def custom_math_inline_double(tokens, idx, options, env):
            return f"$${html.escape(tokens[idx].content)}$$"

        self._md.renderer.rules["math_inline"] = custom_math_inline
        self._md.renderer.rules["math_inline_double"] = custom_math_inline_double

    def transform(self, markdown_text: str) -> TransformResult:
        tokens = self._md.parse(markdown_text, {})
        frontmatter = self._extract_frontmatter(tokens)
        root = self._build_tree(tokens)
        return TransformResult(root=root, frontmatter=frontmatter, features=self._detect_features(tokens))

    def _render_inline(self, token: Token) -> str:
        return self._md.renderer.renderInline(token.children or [], self._md.options, {})

    def _extract_frontmatter(self, tokens: list[Token]) -> dict[str, Any]:
        for token in tokens:
            if token.type != "front_matter":
                continue
            try:
                data = yaml.safe_load(token.content)
            except yaml.YAMLError as exc:
                logger.warning("Ignoring malformed frontmatter: %s", exc)
                return {}
            if isinstance(data, dict):
                return _json_safe(data)
            return {}
        return {}

    def _detect_features(self, tokens: list[Token]) -> frozenset[str]:
        features: set[str] = set()
        for token in tokens:
            if token.type.startswith("math_"):
                features.add(FEATURE_KATEX)
            elif token.type in ("fence", "code_block"):
                features.add(FEATURE_HLJS)
            elif token.type == "inline":
                for child in token.children or []:
                    if child.type.startswith("math_"):
                        features.add(FEATURE_KATEX)
        return frozenset(features)

    def _leaf_content(self, token: Token) -> str | None:
        if token.type in ("fence", "code_block"):
            lang = token.info.strip().split(maxsplit=1)[0] if token.info and token.info.strip() else ""
            class_attr = f' class="language-{html.escape(lang)}"' if lang else ""
            return f"<pre><code{class_attr}>{html.escape(token.content)}</code></pre>"
        if token.type == "math_block" or token.type == "math_block_label":
            return f"$${html.escape(token.content.strip())}$$"
        if token.type == "html_block":
            return token.content.strip()
        return None

    def _build_tree(self, tokens: list[Token]) -> dict[str, Any]:
        root = _new_node("")
        # (depth, node); root sits at depth 0, headings at their level.
        stack: list[tuple[int, dict[str, Any]]] = [(0, root)]
        open_items: list[dict[str, Any]] = []

        for idx, token in enumerate(tokens):
            kind = token.type
            if kind == "heading_open" and not open_items:
                level = int(token.tag[1:])
                node = _new_node(self._render_inline(tokens[idx + 1]), token)
                while stack[-1][0] >= level:
                    stack.pop()
                stack[-1][1]["children"].append(node)
                stack.append((level, node))
            elif kind == "table_open":
                end = next(
                    (pos for pos in range(idx, len(tokens)) if tokens[pos].type == "table_close"),
                    len(tokens) - 1,
                )
                table_html = self._md.renderer.render(tokens[idx : end + 1], self._md.options, {})
                stack[-1][1]["children"].append(_new_node(table_html.strip(), token))
            elif kind == "list_item_open":
                node = _new_node("", token)
                stack[-1][1]["children"].append(node)
                stack.append((LIST_ITEM_DEPTH, node))
                open_items.append(node)
            elif kind == "list_item_close":
                item = open_items.pop()
                while stack[-1][1] is not item:
                    stack.pop()
                stack.pop()
            elif kind in ("paragraph_open", "heading_open"):
                # Headings inside list items read as item text.
                content = self._render_inline(tokens[idx + 1])
                if open_items and stack[-1][1] is open_items[-1] and not open_items[-1]["content"]:
                    open_items[-1]["content"] = content
                else:
                    stack[-1][1]["children"].append(_new_node(content, token))
            else:
                content = self._leaf_content(token)
                if content is not None:
                    stack[-1][1]["children"].append(_new_node(content, token))

        if not root["content"] and len(root["children"]) == 1:
            return root["children"][0]
        return root

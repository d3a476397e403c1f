"""HTML pages for the live view and for exported mind maps."""

from __future__ import annotations

import html
import json
import re
from typing import Any, Iterable

from mdmindmap.assets import AssetManifest, Iife, InlineScript, Script, ScriptItem, Style, StyleItem, Stylesheet

ROOT_JSON_TOKEN = "__MDMINDMAP_ROOT_JSON__"
OPTIONS_JSON_TOKEN = "__MDMINDMAP_OPTIONS_JSON__"
CUSTOM_CSS_ELEMENT_ID = "mindmap-custom-css"
_TEMPLATE_TOKEN = re.compile(r"__MDMINDMAP_[A-Z_]+__")


def json_for_script(value: Any) -> str:
    """JSON text that is safe to place inside an inline <script> element."""
    return json.dumps(value, ensure_ascii=False).replace("</", "<\\/")


def _render_attrs(attrs: Iterable[tuple[str, str]]) -> str:
    return "".join(f' {html.escape(name)}="{html.escape(value)}"' for name, value in attrs)


def render_styles(items: Iterable[StyleItem]) -> str:
    parts: list[str] = []
    for item in items:
        if isinstance(item, Stylesheet):
            parts.append(f'<link rel="stylesheet" href="{html.escape(item.href)}"/>')
        elif isinstance(item, Style):
            css = item.css.replace("</style", "<\\/style")
            parts.append(f"<style>{css}</style>")
    return "\n".join(parts)


def render_scripts(items: Iterable[ScriptItem]) -> str:
    parts: list[str] = []
    for item in items:
        if isinstance(item, Script):
            parts.append(f'<script src="{html.escape(item.src)}"{_render_attrs(item.attrs)}></script>')
        elif isinstance(item, InlineScript):
            text = item.text.replace("</script", "<\\/script")
            parts.append(f"<script{_render_attrs(item.attrs)}>{text}</script>")
        elif isinstance(item, Iife):
            args = ", ".join(item.args)
            parts.append(f"<script>({item.fn})({args})</script>")
    return "\n".join(parts)


def build_view_html(manifest: AssetManifest, title: str) -> str:
    """Live page shell; data arrives later through setData messages."""
    return f"""<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8"/>
  <meta name="viewport" content="width=device-width, initial-scale=1"/>
  <title>{html.escape(title)}</title>
{render_styles(manifest.styles)}
  <style id="{CUSTOM_CSS_ELEMENT_ID}"></style>
</head>
<body>
  <svg id="mindmap"></svg>
{render_scripts(manifest.scripts)}
</body>
</html>
"""


_EXPORT_TEMPLATE = """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8"/>
  <meta name="viewport" content="width=device-width, initial-scale=1"/>
  <title>__MDMINDMAP_TITLE__</title>
__MDMINDMAP_STYLES__
</head>
<body>
  <svg id="mindmap"></svg>
__MDMINDMAP_SCRIPTS__
  <script>
    (() => {
      const root = __MDMINDMAP_ROOT_JSON__;
      const jsonOptions = __MDMINDMAP_OPTIONS_JSON__;
      window.mm = window.mindmapCore.render(document.getElementById("mindmap"), root, jsonOptions);
    })();
  </script>
</body>
</html>
"""


def fill_template(root: dict[str, Any], manifest: AssetManifest, json_options: dict[str, Any], title: str) -> str:
    """Standalone page that renders `root` once; `window.mm` exists before deferred scripts run."""
    values = {
        "__MDMINDMAP_TITLE__": html.escape(title),
        "__MDMINDMAP_STYLES__": render_styles(manifest.styles),
        "__MDMINDMAP_SCRIPTS__": render_scripts(manifest.scripts),
        OPTIONS_JSON_TOKEN: json_for_script(json_options),
        ROOT_JSON_TOKEN: json_for_script(root),
    }
    # Single pass over the template so substituted text is never rescanned.
    return _TEMPLATE_TOKEN.sub(lambda match: values.get(match.group(0), match.group(0)), _EXPORT_TEMPLATE)

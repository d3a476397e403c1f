"""Asset manifests for the mind map page: descriptors, merging, and resolution.

A manifest is an ordered pair of style and script sequences. Reference-bearing
descriptors (`Stylesheet`, `Script`) carry a path or URL; inline descriptors
(`Style`, `InlineScript`, `Iife`) carry their content directly. The resolver
turns references into view-loadable URLs for the live page, or reads them and
inlines the text for a self-contained export.
"""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Union
from urllib.parse import unquote, urlsplit

import httpx

from mdmindmap.log import get_logger

logger = get_logger(__name__)

STATIC_DIR = Path(__file__).resolve().parent / "static"
VENDOR_DIR_ENV_VAR = "MDMINDMAP_VENDOR_DIR"
QWEBCHANNEL_JS = "qrc:///qtwebchannel/qwebchannel.js"

FEATURE_KATEX = "katex"
FEATURE_HLJS = "hljs"
KNOWN_FEATURES = (FEATURE_KATEX, FEATURE_HLJS)


class AssetReadError(Exception):
    """A referenced asset could not be read while inlining it."""

    def __init__(self, ref: str, reason: str):
        super().__init__(f"Cannot read asset {ref}: {reason}")
        self.ref = ref
        self.reason = reason


class ResolveMode(enum.Enum):
    LIVE_REFERENCE = "live-reference"
    EMBED = "embed"


@dataclass(frozen=True)
class Stylesheet:
    href: str


@dataclass(frozen=True)
class Style:
    css: str


@dataclass(frozen=True)
class Script:
    src: str
    attrs: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True)
class InlineScript:
    text: str
    attrs: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True)
class Iife:
    """`(fn)(...args)` where fn and every arg are JavaScript source text."""

    fn: str
    args: tuple[str, ...] = ()


StyleItem = Union[Stylesheet, Style]
ScriptItem = Union[Script, InlineScript, Iife]


@dataclass(frozen=True)
class AssetManifest:
    styles: tuple[StyleItem, ...] = field(default_factory=tuple)
    scripts: tuple[ScriptItem, ...] = field(default_factory=tuple)

    def references(self) -> list[str]:
        refs = [item.href for item in self.styles if isinstance(item, Stylesheet)]
        refs.extend(item.src for item in self.scripts if isinstance(item, Script))
        return refs


def merge_assets(base: AssetManifest, *additional: AssetManifest) -> AssetManifest:
    """Concatenate manifests in argument order; no deduplication."""
    styles: list[StyleItem] = list(base.styles)
    scripts: list[ScriptItem] = list(base.scripts)
    for manifest in additional:
        styles.extend(manifest.styles)
        scripts.extend(manifest.scripts)
    return AssetManifest(styles=tuple(styles), scripts=tuple(scripts))


def _is_url(ref: str) -> bool:
    # Single-letter schemes are Windows drive letters, not URLs.
    scheme = urlsplit(ref).scheme
    return len(scheme) > 1


def _fetch_url(url: str) -> bytes:
    response = httpx.get(url, follow_redirects=True)
    response.raise_for_status()
    return response.content


class AssetResolver:
    """Rewrites manifest references for the live view or inlines them for export."""

    def __init__(self, static_dir: Path = STATIC_DIR, fetch: Callable[[str], bytes] | None = None):
        self.static_dir = static_dir
        self._fetch = fetch or _fetch_url

    def locate(self, ref: str) -> Path | str:
        """Return the on-disk path for a local reference, or the URL unchanged."""
        if _is_url(ref):
            parts = urlsplit(ref)
            if parts.scheme == "file":
                return Path(unquote(parts.path))
            return ref
        path = Path(ref)
        if path.is_absolute():
            return path
        return self.static_dir / path

    def to_url(self, ref: str) -> str:
        location = self.locate(ref)
        if isinstance(location, Path):
            return location.resolve().as_uri()
        return location

    def read_bytes(self, ref: str) -> bytes:
        location = self.locate(ref)
        if isinstance(location, Path):
            try:
                return location.read_bytes()
            except OSError as exc:
                raise AssetReadError(ref, exc.strerror or str(exc)) from exc
        scheme = urlsplit(location).scheme
        if scheme not in ("http", "https"):
            raise AssetReadError(ref, f"unsupported scheme {scheme!r}")
        try:
            return self._fetch(location)
        except httpx.HTTPError as exc:
            raise AssetReadError(ref, str(exc)) from exc

    def read_text(self, ref: str) -> str:
        data = self.read_bytes(ref)
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise AssetReadError(ref, f"not UTF-8 text ({exc.reason})") from exc

    def resolve(self, manifest: AssetManifest, mode: ResolveMode) -> AssetManifest:
        if mode is ResolveMode.EMBED:
            return self._embed(manifest)
        return self._reference(manifest)

    def _reference(self, manifest: AssetManifest) -> AssetManifest:
        styles: list[StyleItem] = []
        for item in manifest.styles:
            if isinstance(item, Stylesheet):
                item = Stylesheet(self.to_url(item.href))
            styles.append(item)
        scripts: list[ScriptItem] = []
        for item in manifest.scripts:
            if isinstance(item, Script):
                item = Script(self.to_url(item.src), item.attrs)
            scripts.append(item)
        return AssetManifest(styles=tuple(styles), scripts=tuple(scripts))

    def _embed(self, manifest: AssetManifest) -> AssetManifest:
        # Every read must succeed before any output is produced.
        styles: list[StyleItem] = []
        for item in manifest.styles:
            if isinstance(item, Stylesheet):
                logger.debug("Embedding stylesheet %s", item.href)
                item = Style(self.read_text(item.href))
            styles.append(item)
        scripts: list[ScriptItem] = []
        for item in manifest.scripts:
            if isinstance(item, Script):
                logger.debug("Embedding script %s", item.src)
                item = InlineScript(self.read_text(item.src), item.attrs)
            scripts.append(item)
        return AssetManifest(styles=tuple(styles), scripts=tuple(scripts))


@dataclass(frozen=True)
class VendorAsset:
    relative_path: str
    cdn_url: str


VENDOR_ASSETS = {
    "d3": VendorAsset("d3/d3.min.js", "https://cdn.jsdelivr.net/npm/d3@7.9.0/dist/d3.min.js"),
    "markmap-view": VendorAsset(
        "markmap-view/index.js",
        "https://cdn.jsdelivr.net/npm/markmap-view@0.18.12/dist/browser/index.js",
    ),
    "markmap-toolbar": VendorAsset(
        "markmap-toolbar/index.js",
        "https://cdn.jsdelivr.net/npm/markmap-toolbar@0.18.12/dist/index.js",
    ),
    "markmap-toolbar-css": VendorAsset(
        "markmap-toolbar/style.css",
        "https://cdn.jsdelivr.net/npm/markmap-toolbar@0.18.12/dist/style.css",
    ),
    "katex-css": VendorAsset("katex/katex.min.css", "https://cdn.jsdelivr.net/npm/katex@0.16.9/dist/katex.min.css"),
    "katex": VendorAsset("katex/katex.min.js", "https://cdn.jsdelivr.net/npm/katex@0.16.9/dist/katex.min.js"),
    "katex-auto-render": VendorAsset(
        "katex/contrib/auto-render.min.js",
        "https://cdn.jsdelivr.net/npm/katex@0.16.9/dist/contrib/auto-render.min.js",
    ),
    "hljs-css": VendorAsset(
        "highlight.js/styles/default.min.css",
        "https://cdn.jsdelivr.net/npm/@highlightjs/cdn-assets@11.9.0/styles/default.min.css",
    ),
    "hljs": VendorAsset(
        "highlight.js/highlight.min.js",
        "https://cdn.jsdelivr.net/npm/@highlightjs/cdn-assets@11.9.0/highlight.min.js",
    ),
}


def _vendor_dirs() -> list[Path]:
    dirs: list[Path] = []
    env_value = os.environ.get(VENDOR_DIR_ENV_VAR, "").strip()
    if env_value:
        dirs.append(Path(env_value).expanduser())
    dirs.append(STATIC_DIR / "vendor")
    dirs.append(Path("/usr/share/javascript"))
    return dirs


class AssetCatalog:
    """Builds the partial manifests that make up the live page and exports."""

    def __init__(self, vendor_dirs: Iterable[Path] | None = None):
        self._vendor_dirs = list(vendor_dirs) if vendor_dirs is not None else _vendor_dirs()
        self._sources: dict[str, str] = {}

    def vendor_source(self, name: str) -> str:
        """Local vendor copy when one exists, else the CDN URL."""
        cached = self._sources.get(name)
        if cached is not None:
            return cached
        asset = VENDOR_ASSETS[name]
        source = asset.cdn_url
        for directory in self._vendor_dirs:
            candidate = directory / asset.relative_path
            try:
                if candidate.is_file():
                    source = str(candidate.resolve())
                    break
            except OSError:
                continue
        self._sources[name] = source
        return source

    def base_assets(self, view: bool = False) -> AssetManifest:
        styles: list[StyleItem] = [Stylesheet("mindmap.css")]
        scripts: list[ScriptItem] = [
            Script(self.vendor_source("d3")),
            Script(self.vendor_source("markmap-view")),
            Script("mindmap-core.js"),
        ]
        if view:
            scripts.append(Script(QWEBCHANNEL_JS))
            scripts.append(Script("view.js"))
        return AssetManifest(styles=tuple(styles), scripts=tuple(scripts))

    def feature_assets(self, features: Iterable[str] | None = None) -> AssetManifest:
        """Assets for the given features, in catalog order; None means all."""
        wanted = set(KNOWN_FEATURES if features is None else features)
        styles: list[StyleItem] = []
        scripts: list[ScriptItem] = []
        if FEATURE_KATEX in wanted:
            styles.append(Stylesheet(self.vendor_source("katex-css")))
            scripts.append(Script(self.vendor_source("katex")))
            scripts.append(Script(self.vendor_source("katex-auto-render")))
        if FEATURE_HLJS in wanted:
            styles.append(Stylesheet(self.vendor_source("hljs-css")))
            scripts.append(Script(self.vendor_source("hljs")))
        return AssetManifest(styles=tuple(styles), scripts=tuple(scripts))

    def toolbar_assets(self) -> AssetManifest:
        return AssetManifest(
            styles=(Stylesheet(self.vendor_source("markmap-toolbar-css")),),
            scripts=(Script(self.vendor_source("markmap-toolbar")),),
        )

"""Unit tests for asset manifests, resolution and the vendor catalog."""
import tempfile
import unittest
from pathlib import Path

import httpx

from mdmindmap.assets import (
    QWEBCHANNEL_JS,
    VENDOR_ASSETS,
    AssetCatalog,
    AssetManifest,
    AssetReadError,
    AssetResolver,
    Iife,
    InlineScript,
    ResolveMode,
    Script,
    Style,
    Stylesheet,
    merge_assets,
)


class MergeAssetsTest(unittest.TestCase):
    def test_concatenates_in_argument_order(self) -> None:
        first = AssetManifest(styles=(Stylesheet("a.css"),), scripts=(Script("a.js"),))
        second = AssetManifest(scripts=(Script("b.js"),))
        third = AssetManifest(styles=(Style("p{}"),), scripts=(Iife("() => {}"),))
        merged = merge_assets(first, second, third)
        self.assertEqual(merged.styles, (Stylesheet("a.css"), Style("p{}")))
        self.assertEqual(merged.scripts, (Script("a.js"), Script("b.js"), Iife("() => {}")))

    def test_duplicates_are_kept(self) -> None:
        manifest = AssetManifest(scripts=(Script("a.js"),))
        merged = merge_assets(manifest, manifest)
        self.assertEqual(len(merged.scripts), 2)

    def test_base_alone_is_unchanged(self) -> None:
        manifest = AssetManifest(styles=(Stylesheet("a.css"),))
        self.assertEqual(merge_assets(manifest), manifest)


class AssetResolverTest(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.static_dir = Path(self._tmp.name)
        (self.static_dir / "app.css").write_text("body { margin: 0; }", encoding="utf-8")
        (self.static_dir / "app.js").write_text("console.log('hi');", encoding="utf-8")
        self.fetched: list[str] = []

        def fetch(url: str) -> bytes:
            self.fetched.append(url)
            return b"window.remote = true;"

        self.resolver = AssetResolver(self.static_dir, fetch=fetch)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_live_reference_rewrites_local_paths_to_urls(self) -> None:
        manifest = AssetManifest(
            styles=(Stylesheet("app.css"),),
            scripts=(Script("app.js", (("defer", ""),)), Script("https://cdn.example/x.js")),
        )
        resolved = self.resolver.resolve(manifest, ResolveMode.LIVE_REFERENCE)
        self.assertEqual(resolved.styles[0], Stylesheet((self.static_dir / "app.css").resolve().as_uri()))
        self.assertEqual(resolved.scripts[0].src, (self.static_dir / "app.js").resolve().as_uri())
        self.assertEqual(resolved.scripts[0].attrs, (("defer", ""),))
        self.assertEqual(resolved.scripts[1], Script("https://cdn.example/x.js"))
        self.assertEqual(self.fetched, [])

    def test_live_reference_passes_other_schemes_through(self) -> None:
        self.assertEqual(self.resolver.to_url(QWEBCHANNEL_JS), QWEBCHANNEL_JS)

    def test_embed_inlines_every_reference(self) -> None:
        manifest = AssetManifest(
            styles=(Stylesheet("app.css"), Style("p {}")),
            scripts=(Script("app.js", (("defer", ""),)), Script("https://cdn.example/x.js"), Iife("() => {}")),
        )
        embedded = self.resolver.resolve(manifest, ResolveMode.EMBED)
        self.assertEqual(embedded.styles, (Style("body { margin: 0; }"), Style("p {}")))
        self.assertEqual(
            embedded.scripts,
            (
                InlineScript("console.log('hi');", (("defer", ""),)),
                InlineScript("window.remote = true;"),
                Iife("() => {}"),
            ),
        )
        self.assertEqual(self.fetched, ["https://cdn.example/x.js"])

    def test_embed_round_trips_live_references(self) -> None:
        manifest = AssetManifest(styles=(Stylesheet("app.css"),), scripts=(Script("app.js"),))
        referenced = self.resolver.resolve(manifest, ResolveMode.LIVE_REFERENCE)
        embedded = self.resolver.resolve(manifest, ResolveMode.EMBED)
        self.assertEqual(self.resolver.read_text(referenced.styles[0].href), embedded.styles[0].css)
        self.assertEqual(self.resolver.read_text(referenced.scripts[0].src), embedded.scripts[0].text)

    def test_missing_file_raises(self) -> None:
        manifest = AssetManifest(styles=(Stylesheet("app.css"),), scripts=(Script("missing.js"),))
        with self.assertRaises(AssetReadError) as ctx:
            self.resolver.resolve(manifest, ResolveMode.EMBED)
        self.assertEqual(ctx.exception.ref, "missing.js")

    def test_fetch_failure_raises(self) -> None:
        def failing_fetch(url: str) -> bytes:
            raise httpx.ConnectError("connection refused")

        resolver = AssetResolver(self.static_dir, fetch=failing_fetch)
        with self.assertRaises(AssetReadError) as ctx:
            resolver.read_text("https://cdn.example/x.js")
        self.assertIn("connection refused", str(ctx.exception))

    def test_unsupported_scheme_cannot_be_embedded(self) -> None:
        with self.assertRaises(AssetReadError):
            self.resolver.read_text(QWEBCHANNEL_JS)

    def test_non_utf8_asset_raises(self) -> None:
        (self.static_dir / "binary.js").write_bytes(b"\xff\xfe\x00")
        with self.assertRaises(AssetReadError):
            self.resolver.read_text("binary.js")

    def test_file_url_is_read_from_disk(self) -> None:
        url = (self.static_dir / "app.js").resolve().as_uri()
        self.assertEqual(self.resolver.read_text(url), "console.log('hi');")


class AssetCatalogTest(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.vendor_dir = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_prefers_local_vendor_copy(self) -> None:
        local = self.vendor_dir / VENDOR_ASSETS["d3"].relative_path
        local.parent.mkdir(parents=True)
        local.write_text("// d3", encoding="utf-8")
        catalog = AssetCatalog([self.vendor_dir])
        self.assertEqual(catalog.vendor_source("d3"), str(local.resolve()))
        self.assertEqual(catalog.vendor_source("markmap-view"), VENDOR_ASSETS["markmap-view"].cdn_url)

    def test_view_page_adds_bridge_scripts(self) -> None:
        catalog = AssetCatalog([])
        export_scripts = catalog.base_assets().scripts
        view_scripts = catalog.base_assets(view=True).scripts
        self.assertEqual(view_scripts[: len(export_scripts)], export_scripts)
        self.assertEqual(view_scripts[len(export_scripts) :], (Script(QWEBCHANNEL_JS), Script("view.js")))
        self.assertEqual(catalog.base_assets().styles, (Stylesheet("mindmap.css"),))

    def test_feature_assets_follow_requested_features(self) -> None:
        catalog = AssetCatalog([])
        hljs_only = catalog.feature_assets({"hljs"})
        self.assertEqual(hljs_only.references(), [VENDOR_ASSETS["hljs-css"].cdn_url, VENDOR_ASSETS["hljs"].cdn_url])
        self.assertEqual(catalog.feature_assets(set()), AssetManifest())
        everything = catalog.feature_assets(None)
        self.assertEqual(everything.styles[0], Stylesheet(VENDOR_ASSETS["katex-css"].cdn_url))
        self.assertEqual(len(everything.scripts), 3)


if __name__ == "__main__":
    unittest.main()

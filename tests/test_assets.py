"""Tests for inlay.assets module."""

import pytest

from inlay.assets import (
    SCRIPT,
    STYLE,
    AssetRegistry,
    PageAssets,
    asset_handle,
    collect_assets,
    resolve_url,
)

BASE = "https://target.example"


class TestResolveUrl:
    """Tests for resolve_url function."""

    def test_absolute_untouched(self):
        """Test URLs with a scheme are left alone."""
        for url in ("https://cdn.example/x.js", "HTTP://cdn.example/x.js"):
            assert resolve_url(url, BASE) == url

    def test_protocol_relative_secure(self):
        """Test protocol-relative URLs follow the host's transport."""
        assert resolve_url("//cdn.example/x.js", BASE) == "https://cdn.example/x.js"

    def test_protocol_relative_insecure(self):
        """Test protocol-relative URLs on a plain-http host."""
        assert (
            resolve_url("//cdn.example/x.js", BASE, secure=False)
            == "http://cdn.example/x.js"
        )

    def test_root_relative(self):
        """Test root-relative URLs are placed under the target origin."""
        assert resolve_url("/app.js", BASE) == "https://target.example/app.js"

    def test_relative(self):
        """Test document-relative URLs are placed under the target origin."""
        expected = "https://target.example/css/site.css"
        assert resolve_url("css/site.css", BASE) == expected

    def test_base_with_trailing_slash(self):
        """Test only one slash joins base and path."""
        assert resolve_url("///app.js", BASE + "/") == "https://target.example/app.js"

    def test_whitespace_trimmed(self):
        """Test surrounding whitespace is ignored."""
        assert resolve_url("  /app.js \n", BASE) == "https://target.example/app.js"

    def test_empty(self):
        """Test empty input yields empty output."""
        assert resolve_url("", BASE) == ""
        assert resolve_url("   ", BASE) == ""

    @pytest.mark.parametrize(
        "url",
        ["/a.css", "a.css", "../a.css", "//cdn/a.js", "https://x/y", "?v=1", "#frag"],
    )
    def test_fixed_point(self, url):
        """Test resolving an already resolved URL changes nothing."""
        once = resolve_url(url, BASE)
        assert once
        assert resolve_url(once, BASE) == once


class TestAssetHandle:
    """Tests for asset_handle function."""

    def test_stable(self):
        """Test the same URL always maps to the same handle."""
        assert asset_handle(STYLE, "https://a/x.css") == asset_handle(
            STYLE, "https://a/x.css"
        )

    def test_format(self):
        """Test handle shape."""
        handle = asset_handle(SCRIPT, "https://a/x.js", prefix="rdb")
        assert handle.startswith("rdb-script-")
        assert len(handle) == len("rdb-script-") + 10


class TestCollectAssetsRegister:
    """Tests for collect_assets in register mode."""

    def test_happy_path(self):
        """Test script after body is registered and body is extracted."""
        html = '<html><body><p>Hi</p></body><script src="/app.js"></script></html>'
        collected = collect_assets(html, BASE)

        assert collected.body_html.strip() == "<p>Hi</p>"
        assert [s.resolved_url for s in collected.scripts] == [
            "https://target.example/app.js"
        ]
        assert collected.scripts[0].original_url == "/app.js"
        assert collected.styles == []

    def test_stylesheets_deduplicated(self):
        """Test identical stylesheets register once."""
        html = (
            "<html><head>"
            '<link rel="stylesheet" href="/a.css">'
            '<link rel="stylesheet" href="/a.css">'
            '<link rel="stylesheet" href="https://target.example/a.css">'
            "</head><body><p>x</p></body></html>"
        )
        collected = collect_assets(html, BASE)

        assert len(collected.styles) == 1
        assert collected.styles[0].resolved_url == "https://target.example/a.css"

    def test_style_order_follows_document(self):
        """Test stylesheets keep document order."""
        html = (
            '<link rel="stylesheet" href="/b.css">'
            '<link rel="stylesheet" href="/a.css">'
            "<p>x</p>"
        )
        collected = collect_assets(html, BASE)

        assert [s.original_url for s in collected.styles] == ["/b.css", "/a.css"]

    def test_non_stylesheet_links_ignored(self):
        """Test icon and preload links are not registered."""
        html = (
            '<html><head><link rel="icon" href="/favicon.ico">'
            '<link rel="preload" href="/font.woff2"></head>'
            "<body><p>x</p></body></html>"
        )
        collected = collect_assets(html, BASE)

        assert collected.styles == []

    def test_rel_case_insensitive(self):
        """Test rel values are compared without case."""
        html = '<link rel="StyleSheet" href="/a.css"><p>x</p>'
        collected = collect_assets(html, BASE)

        assert len(collected.styles) == 1

    def test_async_defer_flags(self):
        """Test script loading flags are carried on the reference."""
        html = (
            "<body>"
            '<script async src="/a.js"></script>'
            '<script defer src="/b.js"></script>'
            '<script src="/c.js"></script>'
            "</body>"
        )
        scripts = collect_assets(html, BASE).scripts

        assert [(s.is_async, s.defer) for s in scripts] == [
            (True, False),
            (False, True),
            (False, False),
        ]

    def test_scripts_deduplicated(self):
        """Test identical scripts register once."""
        html = '<script src="/a.js"></script><script src="a.js"></script><p>x</p>'
        assert len(collect_assets(html, BASE).scripts) == 1

    def test_inline_scripts_in_order(self):
        """Test inline script blocks are collected in document order."""
        html = (
            "<html><head><script>var a = 1;</script></head>"
            "<body><p>x</p><script>var b = 2;</script>"
            "<script>   </script></body></html>"
        )
        collected = collect_assets(html, BASE)

        assert collected.inline_scripts == ["var a = 1;", "var b = 2;"]
        assert "<script" not in collected.body_html

    def test_inline_styles_collected(self):
        """Test inline style blocks are collected and removed."""
        html = (
            "<html><head><style>p { color: red }</style></head>"
            "<body><p>x</p></body></html>"
        )
        collected = collect_assets(html, BASE)

        assert collected.inline_styles == ["p { color: red }"]
        assert "<style" not in collected.body_html

    def test_asset_elements_removed_from_body(self):
        """Test moved assets no longer appear in the fragment."""
        html = (
            '<body><link rel="stylesheet" href="/a.css"><p>x</p>'
            '<script src="/a.js"></script></body>'
        )
        collected = collect_assets(html, BASE)

        assert "link" not in collected.body_html
        assert "script" not in collected.body_html
        assert "<p>x</p>" in collected.body_html

    def test_protocol_relative_uses_transport(self):
        """Test secure flag reaches URL resolution."""
        html = '<script src="//cdn.example/x.js"></script><p>x</p>'
        collected = collect_assets(html, BASE, secure=False)

        assert collected.scripts[0].resolved_url == "http://cdn.example/x.js"

    def test_empty_href_skipped(self):
        """Test a stylesheet link without href registers nothing."""
        html = '<link rel="stylesheet" href=""><p>x</p>'
        assert collect_assets(html, BASE).styles == []

    def test_body_preserves_order(self):
        """Test body children keep their order."""
        html = "<html><body><h1>A</h1><p>B</p><div>C</div></body></html>"
        body = collect_assets(html, BASE).body_html

        assert body.index("<h1>") < body.index("<p>") < body.index("<div>")

    def test_malformed_html_does_not_raise(self):
        """Test broken markup still produces a fragment."""
        html = "<html><body><div><p>unclosed <b>bold</div></span></body>"
        collected = collect_assets(html, BASE)

        assert "unclosed" in collected.body_html

    def test_empty_output(self):
        """Test empty captured output."""
        collected = collect_assets("", BASE)

        assert collected.body_html == ""
        assert collected.empty


class TestCollectAssetsOtherModes:
    """Tests for inline and strip modes."""

    def test_inline_rewrites_in_place(self):
        """Test inline mode rewrites URLs but keeps elements."""
        html = (
            '<body><p>x</p><link rel="stylesheet" href="/a.css">'
            '<script src="js/app.js"></script></body>'
        )
        collected = collect_assets(html, BASE, mode="inline")

        assert 'href="https://target.example/a.css"' in collected.body_html
        assert 'src="https://target.example/js/app.js"' in collected.body_html
        assert collected.empty

    def test_inline_keeps_inline_scripts(self):
        """Test inline mode leaves inline blocks alone."""
        html = "<body><p>x</p><script>var a = 1;</script></body>"
        collected = collect_assets(html, BASE, mode="inline")

        assert "var a = 1;" in collected.body_html

    def test_strip_removes_everything(self):
        """Test strip mode removes asset elements and registers nothing."""
        html = (
            '<body><link rel="stylesheet" href="/a.css"><style>p{}</style>'
            '<script src="/a.js"></script><script>var a;</script><p>x</p></body>'
        )
        collected = collect_assets(html, BASE, mode="strip")

        assert collected.empty
        assert collected.body_html.strip() == "<p>x</p>"


class TestPageAssets:
    """Tests for the in-memory PageAssets registry."""

    def test_is_registry(self):
        """Test PageAssets implements the registry interface."""
        assert isinstance(PageAssets(), AssetRegistry)

    def test_styles_once_per_handle(self):
        """Test repeated registrations emit one tag."""
        assets = PageAssets()
        assets.register_style("h1", "https://t/a.css")
        assets.register_style("h1", "https://t/a.css")

        assert assets.render_head().count("<link") == 1

    def test_scripts_once_per_handle(self):
        """Test repeated script registrations emit one tag."""
        assets = PageAssets()
        assets.register_script("h1", "https://t/a.js", {"defer": True})
        assets.register_script("h1", "https://t/a.js", {"defer": True})

        assert assets.render_footer().count("<script") == 1
        assert assets.script_attributes["h1"] == {"defer": True}

    def test_tag_filters_applied(self):
        """Test script tag filters rewrite emitted tags."""
        assets = PageAssets()
        assets.register_script("h1", "https://t/a.js")
        assets.add_script_tag_filter(
            lambda tag, handle, src: tag.replace("<script ", '<script data-h="1" ')
        )

        assert '<script data-h="1" src="https://t/a.js"' in assets.render_footer()

    def test_inline_blocks_escaped(self):
        """Test inline code cannot close its own block."""
        assets = PageAssets()
        assets.add_inline_script("inline", "var s = '</script><b>';")

        footer = assets.render_footer()
        assert "</script><b>" not in footer
        assert "<\\/script>" in footer

    def test_inline_blocks_grouped_in_order(self):
        """Test inline blocks under one handle keep order."""
        assets = PageAssets()
        assets.add_inline_script("inline", "one();")
        assets.add_inline_script("inline", "two();")

        footer = assets.render_footer()
        assert footer.index("one();") < footer.index("two();")
        assert footer.count("<script") == 1

    def test_render_page(self):
        """Test full page rendering places assets in head and footer."""
        assets = PageAssets()
        assets.register_style("s", "https://t/a.css")
        assets.register_script("j", "https://t/a.js")
        page = assets.render_page("<div>body</div>", title="T & C")

        assert page.index("a.css") < page.index("<body>")
        assert page.index("<div>body</div>") < page.index("a.js")
        assert "<title>T &amp; C</title>" in page

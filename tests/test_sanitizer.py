"""Tests for inlay.sanitizer module."""

import pytest

from inlay.sanitizer import (
    DEFAULT_POLICY,
    SanitizationPolicy,
    sanitize_html,
)


class TestSanitizeHtml:
    """Tests for sanitize_html with the default policy."""

    def test_allowed_markup_kept(self):
        """Test ordinary markup passes unchanged."""
        html = '<p class="lead">Hi <strong>there</strong></p>'
        assert sanitize_html(html) == html

    def test_script_removed_with_content(self):
        """Test script elements and their code are dropped."""
        result = sanitize_html("<p>a</p><script>alert(1)</script><p>b</p>")

        assert "script" not in result
        assert "alert" not in result
        assert result == "<p>a</p><p>b</p>"

    def test_style_removed_with_content(self):
        """Test style elements and their rules are dropped."""
        result = sanitize_html("<style>body{display:none}</style><p>x</p>")
        assert result == "<p>x</p>"

    def test_iframe_removed(self):
        """Test embedded frames are dropped."""
        result = sanitize_html('<iframe src="https://evil"></iframe><p>x</p>')
        assert result == "<p>x</p>"

    def test_unknown_tag_unwrapped(self):
        """Test disallowed elements keep their text content."""
        result = sanitize_html("<p><blink>flash</blink> text</p>")
        assert result == "<p>flash text</p>"

    def test_form_controls_unwrapped(self):
        """Test forms are not allowed by default but their text survives."""
        result = sanitize_html("<form action='/x'><label>Name</label></form>")
        assert result == "Name"

    def test_event_handlers_removed(self):
        """Test on* attributes are removed."""
        result = sanitize_html('<p onclick="steal()">x</p>')
        assert result == "<p>x</p>"

    def test_style_attribute_removed(self):
        """Test inline style attributes are removed."""
        result = sanitize_html('<div style="position:fixed">x</div>')
        assert result == "<div>x</div>"

    def test_javascript_href_removed(self):
        """Test javascript: URLs are removed from links."""
        result = sanitize_html('<a href="javascript:alert(1)">x</a>')
        assert result == "<a>x</a>"

    def test_obfuscated_javascript_href_removed(self):
        """Test whitespace and case tricks do not bypass URL checks."""
        result = sanitize_html('<a href=" JaVa\tScRiPt:alert(1)">x</a>')
        assert "href" not in result

    @pytest.mark.parametrize(
        "href",
        [
            "\x01javascript:alert(1)",
            "\x08 java\x0bscript:alert(1)",
            "\x1fvbscript:msgbox(1)",
            "java\nscript:alert(1)",
        ],
    )
    def test_control_characters_do_not_hide_scheme(self, href):
        """Test control characters around the scheme do not bypass URL checks."""
        result = sanitize_html(f'<a href="{href}">x</a>')
        assert "href" not in result

    def test_safe_href_kept(self):
        """Test normal links keep their href."""
        html = '<a href="https://target.example/page" title="t">x</a>'
        assert sanitize_html(html) == html

    def test_data_attributes_allowed(self):
        """Test wildcard data-* attributes pass."""
        html = '<div data-id="7" data-user-name="a">x</div>'
        assert sanitize_html(html) == html

    def test_aria_attributes_allowed(self):
        """Test wildcard aria-* attributes pass."""
        html = '<span aria-label="close">x</span>'
        assert sanitize_html(html) == html

    def test_comments_removed(self):
        """Test HTML comments are removed."""
        result = sanitize_html("<p>x<!-- secret --></p>")
        assert result == "<p>x</p>"

    def test_text_stays_escaped(self):
        """Test escaped text is not turned into markup."""
        result = sanitize_html("<p>&lt;script&gt;alert(1)&lt;/script&gt;</p>")
        assert result == "<p>&lt;script&gt;alert(1)&lt;/script&gt;</p>"

    def test_plain_text(self):
        """Test plain text passes through."""
        assert sanitize_html("just text") == "just text"

    def test_empty(self):
        """Test empty input."""
        assert sanitize_html("") == ""


class TestIdempotence:
    """Sanitizing twice gives the same result as sanitizing once."""

    @pytest.mark.parametrize(
        "html",
        [
            "<p>Hi</p>",
            "<p><blink>a</blink><b>b</b></p>",
            '<a href="javascript:x" onclick="y">link</a>',
            "<script>alert(1)</script>tail",
            "<div><p>unclosed <b>bold</div></span>",
            "<p>&lt;b&gt; &amp; &quot;</p>",
            '<img src="/x.png" alt="a" onerror="bad()"><br>',
            "<table><tr><td colspan=2>x</td></tr></table>",
            "<!-- c --><svg><script>x</script></svg><p>y</p>",
            "<custom-el data-x='1'><em>t</em></custom-el>",
            "< p>not a tag</p>",
        ],
    )
    def test_idempotent(self, html):
        """Test sanitize(sanitize(x)) == sanitize(x)."""
        once = sanitize_html(html)
        assert sanitize_html(once) == once


class TestSanitizationPolicy:
    """Tests for SanitizationPolicy."""

    def test_default_excludes_script_and_style(self):
        """Test the default policy never allows script or style."""
        assert not DEFAULT_POLICY.allows_tag("script")
        assert not DEFAULT_POLICY.allows_tag("style")

    def test_global_pattern_not_a_tag(self):
        """Test the global attribute entry is not itself a tag."""
        assert not DEFAULT_POLICY.allows_tag("*")

    def test_allows_attribute_patterns(self):
        """Test wildcard attribute patterns."""
        policy = SanitizationPolicy(allowed_tags={"div": frozenset({"data-*"})})

        assert policy.allows_attribute("div", "data-anything")
        assert policy.allows_attribute("div", "DATA-X")
        assert not policy.allows_attribute("div", "class")

    def test_extend_adds_tags(self):
        """Test extend returns a new policy with merged tags."""
        extended = DEFAULT_POLICY.extend(
            {"form": ["action", "method"], "a": ["download"]}
        )

        assert extended.allows_tag("form")
        assert extended.allows_attribute("form", "method")
        assert extended.allows_attribute("a", "download")
        assert extended.allows_attribute("a", "href")
        assert not DEFAULT_POLICY.allows_tag("form")

    def test_custom_policy(self):
        """Test a narrow custom policy."""
        policy = SanitizationPolicy(allowed_tags={"p": frozenset()})
        result = sanitize_html('<p class="x"><b>bold</b></p>', policy)

        assert result == "<p>bold</p>"

    def test_extended_policy_can_allow_script(self):
        """Test scripts pass only when a caller explicitly allows them."""
        policy = DEFAULT_POLICY.extend({"script": ["src"]})
        result = sanitize_html('<script src="https://t/a.js"></script>', policy)

        assert result == '<script src="https://t/a.js"></script>'


class TestPolicyHook:
    """Tests for the per-call policy hook."""

    def test_hook_receives_policy_and_html(self):
        """Test the hook is called once with policy and raw HTML."""
        calls = []

        def hook(policy, html):
            calls.append((policy, html))
            return policy

        sanitize_html("<p>x</p>", hook=hook)

        assert calls == [(DEFAULT_POLICY, "<p>x</p>")]

    def test_hook_can_extend_policy(self):
        """Test the hook's returned policy is used."""
        result = sanitize_html(
            "<form><input name='q'></form>",
            hook=lambda policy, html: policy.extend({"form": [], "input": ["name"]}),
        )

        assert result == '<form><input name="q"/></form>'

"""Tests for the browser client and its injection into HTML."""

from devserver.processors.html import (
    CLIENT_MARKER,
    CLIENT_SCRIPT_PATH,
    SOCKET_PATH,
    inject_client,
    minify_script,
    render_client_script,
)


def test_inject_before_closing_body():
    html = "<html><body><p>Hi</p></body></html>"
    result = inject_client(html)
    assert result.index(CLIENT_SCRIPT_PATH) < result.index("</body>")
    assert result.endswith("</body></html>")


def test_inject_uses_last_closing_body_case_insensitively():
    html = "<pre>&lt;/body&gt;</pre><BODY>x</BODY >"
    result = inject_client(html)
    assert result.index(CLIENT_MARKER) < result.index("</BODY >")


def test_inject_appends_without_body():
    result = inject_client("<p>fragment</p>")
    assert result.startswith("<p>fragment</p>")
    assert CLIENT_SCRIPT_PATH in result


def test_inject_is_idempotent():
    once = inject_client("<body></body>")
    assert inject_client(once) == once
    assert once.count(CLIENT_MARKER) == 1


def test_client_script_toggles():
    plain = render_client_script()
    assert "var NOTIFY = false;" in plain
    assert SOCKET_PATH in plain
    assert "// Guard against double injection" in plain

    noisy = render_client_script(notify=True)
    assert "var NOTIFY = true;" in noisy


def test_minified_client_has_no_comments_or_indentation():
    script = render_client_script(minify=True)
    assert "//" not in [line[:2] for line in script.splitlines()]
    assert not any(line.startswith(" ") for line in script.splitlines())
    assert len(script) < len(render_client_script())


def test_minify_script_drops_blank_and_comment_lines():
    assert minify_script("  a();\n\n  // note\n    b();\n") == "a();\nb();"

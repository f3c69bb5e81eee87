"""Tests for glob matching used by watch registrations."""

import pytest

from devserver.watchers.patterns import GlobSet, normalize_path


@pytest.mark.parametrize(
    "pattern,path,expected",
    [
        ("**", "a/b/c.txt", True),
        ("**", ".gitignore", True),
        ("archive/**", "archive/2019/index.html", True),
        ("archive/**", "charter/index.html", False),
        ("*.html", "index.html", True),
        ("*.html", "spec/index.html", False),
        ("spec/{latest,1.1}/index.bs", "spec/latest/index.bs", True),
        ("spec/{latest,1.1}/index.bs", "spec/1.1/index.bs", True),
        ("spec/{latest,1.1}/index.bs", "spec/1.0/index.bs", False),
        ("spec/{latest,1.1}/index.bs", "spec/1x1/index.bs", False),
        ("spec/{latest,{1.0,1.1}}/index.bs", "spec/1.0/index.bs", True),
        ("**/*.css", "style.css", True),
        ("**/*.css", "a/b/style.css", True),
        ("file?.js", "file1.js", True),
        ("file?.js", "file/.js", False),
        ("notes/\\{draft\\}.md", "notes/{draft}.md", True),
        ("notes/\\{draft\\}.md", "notes/draft.md", False),
    ],
)
def test_single_pattern(pattern, path, expected):
    assert GlobSet([pattern]).matches(path) is expected


def test_string_is_a_single_pattern():
    globs = GlobSet("spec/{latest,1.1}/index.bs")
    assert globs.patterns == ("spec/{latest,1.1}/index.bs",)
    assert globs.matches("spec/1.1/index.bs")


def test_normalize_path():
    assert normalize_path("./spec/latest/") == "spec/latest"
    assert normalize_path("spec\\latest\\index.bs") == "spec/latest/index.bs"


def test_exclusions_apply_to_names_and_ancestors():
    globs = GlobSet(["**", "!*.{log,zip}", "!node_modules"])
    assert globs.matches("spec/latest/index.html")
    assert not globs.matches("debug.log")
    assert not globs.matches("deep/dir/debug.log")
    assert not globs.matches("node_modules")
    assert not globs.matches("node_modules/pkg/index.js")
    assert not globs.matches("src/node_modules/pkg/index.js")
    assert globs.matches("src/node_modules_notes.txt")


def test_exclusion_with_slash_matches_full_path_only():
    globs = GlobSet(["**", "!build/*.html"])
    assert not globs.matches("build/index.html")
    assert globs.matches("other/build/index.html")


def test_only_exclusions_match_nothing():
    assert GlobSet(["!*.log"]).matches("index.html") is False


def test_empty_patterns_rejected():
    with pytest.raises(ValueError):
        GlobSet([])


def test_empty_path_never_matches():
    assert GlobSet("**").matches("") is False

"""
Glob matching for watch registrations.

Patterns are matched with ``wcmatch`` against POSIX paths relative to the
served root: ``**`` spans directories, ``{a,b}`` alternates and dotfiles
match like any other file. A leading ``!`` turns a pattern into an
exclusion that also hides everything below a matching directory, and a
slash-free exclusion matches file and directory names at any depth.
"""

from collections.abc import Iterable
from pathlib import PurePosixPath

from wcmatch import glob

GLOB_FLAGS = glob.GLOBSTAR | glob.BRACE | glob.DOTGLOB


def normalize_path(path: str | PurePosixPath) -> str:
    """Normalize a relative path for matching."""
    text = str(path).replace("\\", "/")
    while text.startswith("./"):
        text = text[2:]
    return text.strip("/")


class GlobSet:
    """An ordered set of include and ``!`` exclusion patterns."""

    def __init__(self, patterns: str | Iterable[str]) -> None:
        self.patterns = (patterns,) if isinstance(patterns, str) else tuple(patterns)
        if not self.patterns:
            raise ValueError("At least one pattern must be specified")

        self._include = [normalize_path(p) for p in self.patterns if not p.startswith("!")]
        self._exclude = [normalize_path(p[1:]) for p in self.patterns if p.startswith("!")]
        self._exclude_names = [p for p in self._exclude if "/" not in p]

    def _excluded(self, path: str) -> bool:
        if not self._exclude:
            return False

        candidate = PurePosixPath(path)
        ancestors = [str(parent) for parent in candidate.parents if str(parent) != "."]
        if any(glob.globmatch(p, self._exclude, flags=GLOB_FLAGS) for p in (path, *ancestors)):
            return True

        if self._exclude_names:
            return any(glob.globmatch(part, self._exclude_names, flags=GLOB_FLAGS) for part in candidate.parts)
        return False

    def matches(self, path: str | PurePosixPath) -> bool:
        """Check whether a relative path is included and not excluded."""
        text = normalize_path(path)
        if not text or not self._include:
            return False
        if not glob.globmatch(text, self._include, flags=GLOB_FLAGS):
            return False
        return not self._excluded(text)

    def __repr__(self) -> str:
        return f"GlobSet({list(self.patterns)!r})"

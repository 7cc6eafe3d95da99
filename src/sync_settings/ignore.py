"""Glob matching for extra files, rooted at the config directory."""

from typing import Iterable

from pathspec import PathSpec
from pathspec.patterns import GitWildMatchPattern


def _anchor(pattern: str) -> str:
    """Root a pattern at the config dir, keeping a leading ``!``.

    Without the leading slash gitwildmatch lets ``*.txt`` match at any
    depth; anchored, it only matches top-level files.
    """
    negate = pattern.startswith("!")
    if negate:
        pattern = pattern[1:]
    if not pattern.startswith("/"):
        pattern = "/" + pattern
    return "!" + pattern if negate else pattern


class GlobSpec:
    """Compiled set of glob patterns matched against config-relative paths.

    Both the snapshot builder (expanding ``extraFilesGlob``) and the blob
    classifier (deciding whether a backup file is ours) go through this
    class, so a file is selected identically on both sides.
    """

    def __init__(self, patterns: Iterable[str] = ()):
        """Initialize spec from patterns.

        Args:
            patterns: Glob patterns; blank lines and comments are skipped
        """
        self.patterns = [
            p.strip() for p in patterns
            if p and p.strip() and not p.strip().startswith("#")
        ]
        # Compile patterns once for efficiency
        self.spec = PathSpec.from_lines(
            GitWildMatchPattern, [_anchor(p) for p in self.patterns]
        )

    def __bool__(self) -> bool:
        return bool(self.patterns)

    def matches(self, relpath: str) -> bool:
        """Check if a config-relative POSIX path matches any pattern.

        Args:
            relpath: Relative path in POSIX format (forward slashes)

        Returns:
            True if the path matches
        """
        if not self.patterns:
            return False
        return self.spec.match_file(relpath)

    def should_traverse(self, dirpath: str) -> bool:
        """Check if a directory should be traversed during scanning.

        If a directory is excluded as a whole, we can skip walking it.

        Args:
            dirpath: Relative directory path in POSIX format

        Returns:
            True if the directory should be traversed
        """
        if not self.patterns:
            return True
        if not dirpath.endswith("/"):
            dirpath = dirpath + "/"
        return not self.spec.match_file(dirpath)

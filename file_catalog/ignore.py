"""
Gitignore-style path filtering for the walker.
"""
import logging
from pathlib import Path
from typing import Iterable, List, Optional

import pathspec

from . import config


class IgnoreMatcher:
    """
    Callable predicate over POSIX paths relative to the scan root.
    Directories are expected with a trailing '/' so directory-only patterns apply.
    """
    def __init__(self, patterns: Iterable[str]):
        self.patterns: List[str] = [p for p in patterns if p.strip()]
        self._spec = pathspec.GitIgnoreSpec.from_lines(self.patterns)

    def __call__(self, relative_path: str) -> bool:
        return self._spec.match_file(relative_path)

    def __len__(self) -> int:
        return len(self.patterns)


def read_pattern_file(path: Path) -> List[str]:
    if not path or not path.is_file():
        return []
    try:
        return path.read_text(encoding='utf-8').splitlines()
    except OSError as e:
        logging.warning(f"Could not read ignore file {path}: {e}")
        return []


def build_ignore_matcher(root: Path,
                         respect_gitignore: bool = True,
                         include_global: bool = False,
                         extra_patterns: Optional[Iterable[str]] = None,
                         extra_files: Optional[Iterable[Path]] = None) -> IgnoreMatcher:
    """
    Combines the built-in defaults, the root's .gitignore, the user's
    ~/.gitignore and any caller supplied patterns into one matcher.
    """
    patterns: List[str] = list(config.DEFAULT_IGNORE_PATTERNS)

    if respect_gitignore:
        if include_global:
            patterns += read_pattern_file(Path.home() / '.gitignore')
        patterns += read_pattern_file(root / '.gitignore')

    for f in extra_files or ():
        patterns += read_pattern_file(Path(f))

    patterns += list(extra_patterns or ())

    logging.debug(f"Ignore matcher built with {len(patterns)} lines")
    return IgnoreMatcher(patterns)

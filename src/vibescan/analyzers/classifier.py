"""Priority-based file classification.

Maps a repository-relative path to the tier it is analyzed in, or to None when
the file is never analyzed. Four ordered pattern tables are consulted:
ignore, tier 1, tier 2, tier 3. The first table that matches decides, so a
file matching several tiers lands in the lowest one.

Glob semantics:
- ``*`` matches any run of characters except ``/``
- ``**`` as a whole segment matches zero or more directories
- dot-files are matched by wildcards
- a pattern without ``/`` is matched against the basename only
- matching is case-sensitive
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from vibescan.models.analysis import PriorityTier

# =============================================================================
# Pattern Tables
# =============================================================================

IGNORE_PATTERNS: tuple[str, ...] = (
    # Dependencies
    "node_modules/**",
    "vendor/**",
    "__pycache__/**",
    ".venv/**",
    "venv/**",
    # Build outputs
    "dist/**",
    "build/**",
    "out/**",
    ".next/**",
    ".nuxt/**",
    ".output/**",
    "target/**",
    # Version control
    ".git/**",
    ".github/**",
    ".gitlab/**",
    ".svn/**",
    # Test coverage
    "coverage/**",
    "test-results/**",
    ".nyc_output/**",
    # IDE/Editor
    ".idea/**",
    ".vscode/**",
    "*.swp",
    "*.swo",
    ".DS_Store",
    # Lock files
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "Gemfile.lock",
    "poetry.lock",
    "composer.lock",
    # Minified
    "*.min.js",
    "*.min.css",
    "*.bundle.js",
    # Binary/media
    "*.png",
    "*.jpg",
    "*.jpeg",
    "*.gif",
    "*.ico",
    "*.svg",
    "*.webp",
    "*.mp4",
    "*.mp3",
    "*.wav",
    "*.pdf",
    "*.zip",
    "*.tar",
    "*.gz",
    "*.woff",
    "*.woff2",
    "*.ttf",
    "*.eot",
    # Generated
    "*.map",
    "*.d.ts",
    "generated/**",
    "auto-generated/**",
)

SECURITY_PATTERNS: tuple[str, ...] = (
    # Environment files (.env.example is deliberately absent)
    ".env",
    ".env.local",
    ".env.production",
    ".env.development",
    ".env.test",
    "**/.env",
    # Auth/security directories
    "**/auth/**",
    "**/authentication/**",
    "**/authorization/**",
    "**/security/**",
    "**/crypto/**",
    "**/secrets/**",
    # Configuration
    "**/config/**",
    "**/configs/**",
    "**/configuration/**",
    "*.config.js",
    "*.config.ts",
    # Sensitive names
    "**/*secret*",
    "**/*password*",
    "**/*token*",
    "**/*key*",
    "**/*credential*",
    "**/*private*",
    # Middleware
    "**/middleware/**",
    "**/middlewares/**",
    # Database and queries
    "**/database/**",
    "**/db/**",
    "**/repositories/**",
    "**/*.sql",
    "**/queries/**",
    "**/migrations/**",
    # Network
    "**/*cors*",
    "**/access-control/**",
)

CORE_PATTERNS: tuple[str, ...] = (
    # API layer
    "**/api/**",
    "**/routes/**",
    "**/router/**",
    "**/endpoints/**",
    # Business logic
    "**/controllers/**",
    "**/services/**",
    "**/handlers/**",
    "**/use-cases/**",
    "**/usecases/**",
    # Data layer
    "**/models/**",
    "**/entities/**",
    "**/schemas/**",
    # Entry points
    "index.js",
    "index.ts",
    "main.js",
    "main.ts",
    "app.js",
    "app.ts",
    "server.js",
    "server.ts",
    "main.py",
    "app.py",
    "__main__.py",
    # Core sources
    "src/index.*",
    "src/main.*",
    "src/app.*",
    "lib/**",
)

SUPPORTING_PATTERNS: tuple[str, ...] = (
    # Utilities
    "**/utils/**",
    "**/utilities/**",
    "**/helpers/**",
    "**/common/**",
    "**/shared/**",
    "**/lib/**",
    # Frontend
    "**/components/**",
    "**/views/**",
    "**/pages/**",
    "**/layouts/**",
    "**/templates/**",
    # Tests
    "**/*.test.*",
    "**/*.spec.*",
    "**/test/**",
    "**/tests/**",
    "**/__tests__/**",
    # Documentation
    "*.md",
    "**/docs/**",
    # Styles
    "**/*.css",
    "**/*.scss",
    "**/*.less",
    # Remaining source files
    "**/*.js",
    "**/*.ts",
    "**/*.jsx",
    "**/*.tsx",
    "**/*.py",
    "**/*.java",
    "**/*.go",
    "**/*.rb",
    "**/*.php",
    "**/*.rs",
)

TIER_NAMES: dict[PriorityTier, str] = {
    PriorityTier.SECURITY: "Security & Secrets",
    PriorityTier.CORE: "Core Business Logic",
    PriorityTier.SUPPORTING: "Supporting Code",
}

TIER_DESCRIPTIONS: dict[PriorityTier, str] = {
    PriorityTier.SECURITY: (
        "Environment files, authentication, configuration, and security-related code"
    ),
    PriorityTier.CORE: "API endpoints, controllers, services, models, and database logic",
    PriorityTier.SUPPORTING: "Utilities, components, tests, and documentation",
}


# =============================================================================
# Glob Compilation
# =============================================================================


def _translate_segment(segment: str) -> str:
    parts: list[str] = []
    for char in segment:
        if char == "*":
            parts.append("[^/]*")
        elif char == "?":
            parts.append("[^/]")
        else:
            parts.append(re.escape(char))
    return "".join(parts)


def compile_glob(pattern: str) -> re.Pattern[str]:
    """Compile a glob pattern into an anchored regular expression.

    Args:
        pattern: Glob pattern (``**``, ``*`` and ``?`` are special)

    Returns:
        Compiled pattern matching whole paths
    """
    segments = pattern.split("/")
    regex = ""
    for index, segment in enumerate(segments):
        last = index == len(segments) - 1
        if segment == "**":
            regex += ".*" if last else "(?:[^/]+/)*"
            continue
        regex += _translate_segment(segment)
        if not last:
            regex += "/"
    return re.compile(f"^{regex}$")


@dataclass(frozen=True)
class GlobPattern:
    """A compiled glob with basename matching for slash-free patterns."""

    pattern: str
    regex: re.Pattern[str] = field(init=False, repr=False, compare=False)
    match_base: bool = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "regex", compile_glob(self.pattern))
        object.__setattr__(self, "match_base", "/" not in self.pattern)

    def matches(self, path: str) -> bool:
        if self.match_base:
            return self.regex.match(path.rsplit("/", 1)[-1]) is not None
        return self.regex.match(path) is not None


class PatternSet:
    """An ordered table of glob patterns."""

    def __init__(self, patterns: Iterable[str]) -> None:
        self._patterns = tuple(GlobPattern(p) for p in patterns)

    def __len__(self) -> int:
        return len(self._patterns)

    def matches(self, path: str) -> bool:
        """Return True if any pattern matches the path."""
        return any(p.matches(path) for p in self._patterns)


_IGNORED = PatternSet(IGNORE_PATTERNS)
_TIER_TABLES: tuple[tuple[PriorityTier, PatternSet], ...] = (
    (PriorityTier.SECURITY, PatternSet(SECURITY_PATTERNS)),
    (PriorityTier.CORE, PatternSet(CORE_PATTERNS)),
    (PriorityTier.SUPPORTING, PatternSet(SUPPORTING_PATTERNS)),
)


# =============================================================================
# Classification
# =============================================================================


def is_ignored(path: str) -> bool:
    """Check whether a path is excluded from analysis outright."""
    return _IGNORED.matches(path)


def classify(path: str) -> PriorityTier | None:
    """Assign a path to its priority tier.

    Args:
        path: Repository-relative path with ``/`` separators

    Returns:
        The lowest matching tier, or None if the file is ignored or unknown
    """
    if not path or is_ignored(path):
        return None
    for tier, table in _TIER_TABLES:
        if table.matches(path):
            return tier
    return None


@dataclass
class CategorizedPaths:
    """Paths partitioned by tier, each list in input order."""

    security: list[str] = field(default_factory=list)
    core: list[str] = field(default_factory=list)
    supporting: list[str] = field(default_factory=list)
    ignored: list[str] = field(default_factory=list)

    def for_tier(self, tier: PriorityTier) -> list[str]:
        if tier is PriorityTier.SECURITY:
            return self.security
        if tier is PriorityTier.CORE:
            return self.core
        return self.supporting

    def counts(self) -> dict[str, int]:
        return {
            "priority1": len(self.security),
            "priority2": len(self.core),
            "priority3": len(self.supporting),
            "ignored": len(self.ignored),
            "total": len(self.security) + len(self.core) + len(self.supporting) + len(self.ignored),
        }


def categorize(paths: Iterable[str]) -> CategorizedPaths:
    """Partition paths into the three tiers plus ignored."""
    result = CategorizedPaths()
    for path in paths:
        tier = classify(path)
        if tier is None:
            result.ignored.append(path)
        else:
            result.for_tier(tier).append(path)
    return result


def filter_by_tier(paths: Iterable[str], tier: PriorityTier) -> list[str]:
    """Return the paths that classify into ``tier``, preserving order."""
    return [path for path in paths if classify(path) == tier]


def tier_name(tier: PriorityTier) -> str:
    return TIER_NAMES[PriorityTier(tier)]


def tier_description(tier: PriorityTier) -> str:
    return TIER_DESCRIPTIONS[PriorityTier(tier)]

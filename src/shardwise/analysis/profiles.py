"""Built-in framework profiles for static test-file analysis.

A profile bundles everything the analyzer needs to know about one test
framework: how a test is declared, how dependencies are imported, and which
indicator categories make a file slower to run.  Profiles are plain data so
``.shardwise.yml`` can override or extend any part of them.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ── Data models ───────────────────────────────────────────────────


@dataclass(frozen=True)
class Indicator:
    """A runtime-cost indicator category."""

    pattern: str
    """Regular expression matched against the file (multiline mode)."""

    weight: float
    """Score added per match. Must be non-negative."""


@dataclass(frozen=True)
class FrameworkProfile:
    """Detection patterns for one test framework."""

    name: str
    """Profile identifier (e.g. ``'pytest'``)."""

    test_markers: tuple[str, ...]
    """Patterns whose matches each count as one test case."""

    import_patterns: tuple[str, ...]
    """Patterns with one capture group yielding an imported module name."""

    indicators: dict[str, Indicator] = field(default_factory=dict)
    """Indicator categories keyed by name."""

    syntax: str = ""
    """Language whose syntax is checked before analysis (``'python'`` or empty)."""


# ── Built-in profiles ─────────────────────────────────────────────

PYTEST_PROFILE = FrameworkProfile(
    name="pytest",
    test_markers=(r"^\s*(?:async\s+)?def\s+test_\w+\s*\(",),
    import_patterns=(
        r"^\s*import\s+([\w.]+)",
        r"^\s*from\s+([\w.]+)\s+import\b",
    ),
    indicators={
        "async": Indicator(r"\basync\s+def\b|\bawait\b|\basyncio\.", 2.0),
        "network": Indicator(r"\b(?:requests|httpx|aiohttp|urllib)\.|\bsocket\.", 3.0),
        "timers": Indicator(r"\btime\.sleep\s*\(|\basyncio\.sleep\s*\(|\bfreezegun\b", 2.5),
        "database": Indicator(
            r"\b(?:sqlalchemy|psycopg2?|sqlite3|pymongo|asyncpg|redis)\b", 3.0
        ),
        "mocking": Indicator(r"\bmock\.patch\b|@patch\b|\b(?:Magic|Async)Mock\b|\bmonkeypatch\b", 1.0),
        "subprocess": Indicator(r"\bsubprocess\.\w+|\bcreate_subprocess_exec\b", 2.0),
    },
    syntax="python",
)

JEST_PROFILE = FrameworkProfile(
    name="jest",
    test_markers=(r"\b(?:it|test)(?:\.only)?\s*\(\s*['\"`]",),
    import_patterns=(
        r"^\s*import\s+(?:[\w{},\s*]+\s+from\s+)?['\"]([\w./@-]+)['\"]",
        r"\brequire\(\s*['\"]([\w./@-]+)['\"]\s*\)",
    ),
    indicators={
        "async": Indicator(r"\basync\b|\bawait\b|\.then\s*\(", 2.0),
        "network": Indicator(r"\b(?:axios|fetch|supertest|nock)\b", 3.0),
        "timers": Indicator(r"\bsetTimeout\b|\bsetInterval\b|\buseFakeTimers\b", 2.5),
        "database": Indicator(r"\b(?:mongoose|sequelize|prisma|typeorm|knex)\b", 3.0),
        "mocking": Indicator(r"\b(?:jest|vi)\.(?:mock|fn|spyOn)\b", 1.0),
    },
)

GO_PROFILE = FrameworkProfile(
    name="go",
    test_markers=(r"^func\s+Test\w+\s*\(",),
    import_patterns=(
        r"^import\s+(?:\w+\s+)?\"([^\"]+)\"",
        r"^\s+(?:\w+\s+)?\"([^\"]+)\"\s*$",
    ),
    indicators={
        "async": Indicator(r"\bgo\s+func\b|\bchan\b|\bsync\.WaitGroup\b", 2.0),
        "network": Indicator(r"\bnet/http\b|\bhttptest\.", 3.0),
        "timers": Indicator(r"\btime\.Sleep\b|\btime\.After\b", 2.5),
        "database": Indicator(r"\bdatabase/sql\b|\bgorm\b|\bsqlmock\b", 3.0),
        "mocking": Indicator(r"\bgomock\b|\btestify/mock\b", 1.0),
    },
)

BUILTIN_PROFILES: dict[str, FrameworkProfile] = {
    profile.name: profile for profile in (PYTEST_PROFILE, JEST_PROFILE, GO_PROFILE)
}


def get_profile(name: str) -> FrameworkProfile | None:
    """Look up a built-in profile by name (case-insensitive)."""
    return BUILTIN_PROFILES.get(name.strip().lower())

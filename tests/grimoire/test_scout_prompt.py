from __future__ import annotations

from grimoire.models import ScoutOptions
from grimoire.scout_prompt import build_prompt, parse_findings

STRUCTURED = """Thinking out loud about src/old.py first.
```findings
SUMMARY:
Routing is declared in one table.
Handlers are thin.

KEY_FILES:
- src/routes.py | route table
- src/handlers/user.py | user handlers

CODE_PATTERNS:
--- pattern ---
description: Handlers validate input first
location: src/handlers/user.py:12
```
def create(req):
    validate(req)
```
--- end pattern ---

RELATED_AREAS:
- tests/handlers/ | handler tests
```
"""


def test_build_prompt_includes_focus_and_timeout() -> None:
    prompt = build_prompt("How does routing work?", ScoutOptions(focus="src/routes", timeout=60))

    assert "How does routing work?" in prompt
    assert "Concentrate your exploration on: src/routes" in prompt
    assert "Time limit: 60 seconds" in prompt
    assert "Exploration Depth: MEDIUM" in prompt


def test_parse_structured_findings() -> None:
    found = parse_findings(STRUCTURED)

    assert found.summary == "Routing is declared in one table.\nHandlers are thin."
    assert [f.path for f in found.key_files] == ["src/routes.py", "src/handlers/user.py"]
    assert len(found.code_patterns) == 1
    pattern = found.code_patterns[0]
    assert pattern.description == "Handlers validate input first"
    assert pattern.location == "src/handlers/user.py:12"
    assert pattern.example == "def create(req):\n    validate(req)"
    assert [(a.path, a.description) for a in found.related_areas] == [
        ("tests/handlers/", "handler tests")
    ]


def test_last_findings_block_wins() -> None:
    text = (
        "```findings\nSUMMARY:\nfirst draft\n```\n"
        "more work\n"
        "```findings\nSUMMARY:\nfinal answer\n```\n"
    )

    assert parse_findings(text).summary == "final answer"


def test_empty_summary_gets_placeholder() -> None:
    found = parse_findings("```findings\nKEY_FILES:\n- a.py | x\n```")

    assert found.summary == "No summary provided"
    assert found.key_files[0].path == "a.py"


def test_unstructured_output_falls_back_to_mentioned_paths() -> None:
    text = "I looked at src/app/main.py and tests/test_main.py.\nAlso src/app/main.py again.\nDone.\nExtra line"

    found = parse_findings(text)

    assert [f.path for f in found.key_files] == ["src/app/main.py", "tests/test_main.py"]
    assert found.summary.startswith("I looked at src/app/main.py")
    assert "Extra line" not in found.summary


def test_unstructured_summary_is_bounded() -> None:
    found = parse_findings("x" * 2000)

    assert len(found.summary) == 500
    assert parse_findings("").summary == "Exploration completed"

"""Prompt text for scout agents and the parser for their findings block."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from .models import CodePattern, KeyFile, RelatedArea, ScoutOptions

_DEPTH_INSTRUCTIONS = {
    "shallow": """## Exploration Depth: SHALLOW
- Quick scan only
- Focus on obvious matches
- 2-3 key files maximum
- 1 code example maximum
- Skip deep directory traversal""",
    "medium": """## Exploration Depth: MEDIUM
- Balanced exploration
- Follow relevant imports/references
- 5-10 key files
- 2-3 code examples
- Explore main directories""",
    "deep": """## Exploration Depth: DEEP
- Thorough investigation
- Follow all relevant paths
- Comprehensive file list
- Multiple code examples
- Document edge cases and nuances
- Include implementation details""",
}

_PROMPT_TEMPLATE = """You are a Scout agent: a lightweight, read-only exploration assistant.

## Your Mission
{question}

## Constraints
- You are READ-ONLY. Do NOT modify any files.
- Do NOT create commits or make changes.
- Focus on understanding and documenting, not changing.
- Be concise but thorough.
- Time limit: {timeout} seconds
{focus}
{depth}

## Output Format
At the END of your exploration, output a findings block in exactly this format:

```findings
SUMMARY:
[2-3 sentence overview of what you found]

KEY_FILES:
- path/to/file1.py | Brief description of relevance
- path/to/file2.py | Brief description of relevance

CODE_PATTERNS:
--- pattern ---
description: What this pattern does
location: path/to/file.py:42
```
example code here
```
--- end pattern ---

RELATED_AREAS:
- path/to/related/ | Why this area is related
```

## Allowed Tools
Only read-only tools: Read, Glob, Grep, and Bash limited to `ls`, `tree`,
`find`, and `wc`. Never write, edit, commit, or run destructive commands.

Begin exploration now and finish with the findings block."""

_SECTIONS = ("SUMMARY", "KEY_FILES", "CODE_PATTERNS", "RELATED_AREAS")
_UNSTRUCTURED_PATH_RE = re.compile(
    r"(?:^|\s)((?:src|lib|test|tests|app)/[\w\-/.]+\.(?:py|ts|js|tsx|jsx|go|rs))",
    re.MULTILINE,
)
_LISTED_RE = re.compile(r"^-\s*([^|]+?)\s*\|\s*(.+)$")


@dataclass
class ParsedFindings:
    summary: str = ""
    key_files: list[KeyFile] = field(default_factory=list)
    code_patterns: list[CodePattern] = field(default_factory=list)
    related_areas: list[RelatedArea] = field(default_factory=list)


def build_prompt(question: str, options: ScoutOptions) -> str:
    """Render the scout prompt for a question.

    Example:
        >>> "Depth: DEEP" in build_prompt("Where is auth?", ScoutOptions(depth="deep"))
        True
    """
    focus = ""
    if options.focus:
        focus = (
            "\n## Focus Area\n"
            f"Concentrate your exploration on: {options.focus}\n"
            "Start there and expand outward only if necessary."
        )
    return _PROMPT_TEMPLATE.format(
        question=question,
        timeout=options.timeout,
        focus=focus,
        depth=_DEPTH_INSTRUCTIONS[options.depth],
    )


def _findings_block(output: str) -> list[str] | None:
    lines = output.splitlines()
    start = None
    for index in range(len(lines) - 1, -1, -1):
        if lines[index].strip() == "```findings":
            start = index
            break
    if start is None:
        return None
    block: list[str] = []
    in_pattern = False
    for line in lines[start + 1 :]:
        stripped = line.strip()
        if stripped == "--- pattern ---":
            in_pattern = True
        elif stripped == "--- end pattern ---":
            in_pattern = False
        elif stripped.startswith("```") and not in_pattern:
            break
        block.append(line)
    return block


def _split_sections(block: list[str]) -> dict[str, list[str]]:
    sections: dict[str, list[str]] = {}
    current: str | None = None
    for line in block:
        header = line.strip().rstrip(":")
        if line.strip().endswith(":") and header in _SECTIONS:
            current = header
            sections[current] = []
            continue
        if current is not None:
            sections[current].append(line)
    return sections


def _parse_patterns(lines: list[str]) -> list[CodePattern]:
    patterns: list[CodePattern] = []
    current: dict[str, str] | None = None
    example: list[str] | None = None
    for line in lines:
        stripped = line.strip()
        if stripped == "--- pattern ---":
            current = {"description": "", "location": "unknown", "example": ""}
            continue
        if current is None:
            continue
        if stripped.startswith("```"):
            if example is None:
                example = []
            else:
                current["example"] = "\n".join(example).strip()
                example = None
            continue
        if example is not None:
            example.append(line)
        elif stripped == "--- end pattern ---":
            if current["description"]:
                patterns.append(CodePattern(**current))
            current = None
        elif stripped.startswith("description:"):
            current["description"] = stripped.removeprefix("description:").strip()
        elif stripped.startswith("location:"):
            current["location"] = stripped.removeprefix("location:").strip()
    if current is not None and current["description"]:
        patterns.append(CodePattern(**current))
    return patterns


def _parse_listed(lines: list[str]) -> list[tuple[str, str]]:
    pairs = []
    for line in lines:
        match = _LISTED_RE.match(line.strip())
        if match:
            pairs.append((match.group(1).strip(), match.group(2).strip()))
    return pairs


def _unstructured(output: str) -> ParsedFindings:
    seen: list[str] = []
    for match in _UNSTRUCTURED_PATH_RE.finditer(output):
        if match.group(1) not in seen:
            seen.append(match.group(1))
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    summary = " ".join(lines[:3])[:500] or "Exploration completed"
    return ParsedFindings(
        summary=summary,
        key_files=[
            KeyFile(path=path, relevance="mentioned in exploration") for path in seen[:10]
        ],
    )


def parse_findings(output: str) -> ParsedFindings:
    """Parse the last findings block in agent output.

    Output without a findings block falls back to the file paths it mentions
    and its first lines.

    Example:
        >>> text = "```findings\\nSUMMARY:\\nAuth lives in one module.\\n\\nKEY_FILES:\\n- src/auth.py | login flow\\n```"
        >>> found = parse_findings(text)
        >>> found.summary, found.key_files[0].path
        ('Auth lives in one module.', 'src/auth.py')
    """
    block = _findings_block(output)
    if block is None:
        return _unstructured(output)
    sections = _split_sections(block)
    summary = "\n".join(sections.get("SUMMARY", [])).strip() or "No summary provided"
    return ParsedFindings(
        summary=summary,
        key_files=[
            KeyFile(path=path, relevance=relevance)
            for path, relevance in _parse_listed(sections.get("KEY_FILES", []))
        ],
        code_patterns=_parse_patterns(sections.get("CODE_PATTERNS", [])),
        related_areas=[
            RelatedArea(path=path, description=description)
            for path, description in _parse_listed(sections.get("RELATED_AREAS", []))
        ],
    )

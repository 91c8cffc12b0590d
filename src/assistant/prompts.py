"""
Prompt templates for the assistant modes.

Each builder returns the full text sent to the model. Context objects are
embedded as indented JSON.
"""

import json
import logging
import re
from typing import Iterable, Mapping, Optional

logger = logging.getLogger(__name__)

_JSON_SPAN = re.compile(r"\{[\s\S]*\}")


def _dump(context: Optional[Mapping]) -> str:
    return json.dumps(context or {}, indent=2, default=str)


def chat_prompt(messages: Iterable[Mapping], system_prompt: str = "") -> str:
    """Flatten a chat transcript into ``role: content`` lines."""
    transcript = "\n".join(f"{m.get('role')}: {m.get('content')}" for m in messages)
    if system_prompt:
        return f"{system_prompt}\n\n{transcript}"
    return transcript


def deep_think_prompt(prompt: str, context: Optional[Mapping] = None) -> str:
    return f"""
DEEP THINKING MODE

Before providing any code or solution, you must:
1. Analyze the problem structure thoroughly
2. Identify potential conflicts and dependencies
3. Consider edge cases and error scenarios
4. Verify library compatibility with current releases
5. Plan the modular architecture

Context:
{_dump(context)}

User Request:
{prompt}

Provide your thinking trace first, then the solution.
"""


def tdd_prompt(prompt: str, context: Optional[Mapping] = None) -> str:
    return f"""
TEST-DRIVEN DEVELOPMENT MODE

You must follow TDD principles:
1. Write tests FIRST before implementation
2. Ensure tests cover all edge cases
3. Implement code to pass the tests
4. Refactor while keeping tests green

Context:
{_dump(context)}

User Request:
{prompt}

Provide:
1. Test cases (using the project's test framework)
2. Implementation code
3. Test results verification
"""


def agent_prompt(task: str, file_system: Optional[Mapping] = None) -> str:
    return f"""
AGENTIC WORKFLOW

You are an autonomous coding agent with file system access.

Current File System:
{_dump(file_system)}

Task:
{task}

Execute the following workflow:
1. INDEX: Analyze the codebase structure
2. PLAN: Create a detailed implementation plan
3. IMPLEMENT: Write/modify files directly
4. TEST: Verify the implementation
5. DEBUG: Fix any issues found
6. OPTIMIZE: Improve performance and code quality

Provide your response in JSON format:
{{
  "thinking": "Your reasoning process",
  "plan": ["step1", "step2", ...],
  "fileOperations": [
    {{
      "operation": "create|update|delete",
      "path": "file/path",
      "content": "file content",
      "reason": "why this change"
    }}
  ],
  "tests": ["test1", "test2", ...],
  "verification": "How to verify the changes"
}}
"""


def review_prompt(code: str, language: str, context: Optional[Mapping] = None) -> str:
    return f"""
CODE REVIEW MODE

Language: {language}
Context: {_dump(context)}

Code to Review:
```{language}
{code}
```

Provide a comprehensive review covering:
1. Code quality and best practices
2. Potential bugs and security issues
3. Performance optimizations
4. Maintainability improvements
5. Test coverage suggestions

Format your response as JSON:
{{
  "quality": "score 1-10",
  "issues": [{{"severity": "high|medium|low", "description": "...", "line": number}}],
  "suggestions": ["suggestion1", "suggestion2", ...],
  "security": ["security concern 1", ...],
  "performance": ["optimization 1", ...]
}}
"""


def stream_prompt(prompt: str, context: Optional[Mapping] = None) -> str:
    return f"""
Context: {_dump(context)}

{prompt}
"""


def parse_json_reply(text: str) -> dict:
    """
    Extract the JSON object from a model reply.

    Takes the span from the first ``{`` to the last ``}``. Never raises:
    a reply without a parsable object comes back as ``{"raw": text}``.
    """
    text = text or ""
    match = _JSON_SPAN.search(text)
    if match:
        try:
            parsed = json.loads(match.group(0))
            if isinstance(parsed, dict):
                return parsed
        except ValueError as e:
            logger.warning(f"Failed to parse JSON reply: {e}")
    return {"raw": text}

# SPDX-License-Identifier: MIT
"""Instructional prompt sent with every suggestion request."""

from __future__ import annotations

INSTRUCTIONS = (
    "You are an expert coding assistant. Analyze the following code and provide "
    "helpful suggestions for improvement, completion, bug fixes, or optimization."
)

_TEMPLATE = """{instructions}

Code:
```
{code}
```

Please provide:
1. Brief analysis of the code
2. Specific suggestions for improvement
3. Any potential issues or bugs
4. Best practices recommendations

Keep your response clear, concise, and actionable."""


def build_prompt(code: str) -> str:
    """Return the full prompt wrapping ``code``."""

    return _TEMPLATE.format(instructions=INSTRUCTIONS, code=code)


__all__ = ["INSTRUCTIONS", "build_prompt"]

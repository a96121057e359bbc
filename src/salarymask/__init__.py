"""salarymask

Salary masking for applicant PDF attachments: detect salary text and cover it
with overlay boxes, or flatten operator-selected regions so the covered text
is destroyed. See ``salarymask.core`` for the composable pipeline APIs and
``salarymask.cli`` / ``salarymask.api`` for user entrypoints.
"""

__all__ = [
    "core",
    "errors",
    "types",
    "geometry",
    "extract",
    "salary_detect",
    "redact",
    "session",
    "policy",
    "storage",
    "audit",
    "batch",
    "api",
    "logging",
    "settings",
    "health",
]

__version__ = "0.1.0"

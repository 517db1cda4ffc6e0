"""Keyword routing of spoken commands to a command category."""

from __future__ import annotations

from models import CommandCategory

# Checked in order; the first category with a matching keyword wins.
KEYWORD_RULES: tuple[tuple[CommandCategory, tuple[str, ...]], ...] = (
    (CommandCategory.GITHUB_PR, ("github", "pull request", "pr")),
    (CommandCategory.ERROR_LOG, ("error", "exception", "bug")),
    (CommandCategory.COMMIT_MSG, ("commit", "git message")),
    (CommandCategory.CODE_REVIEW, ("review", "code quality")),
    (CommandCategory.API_DOCS, ("api", "documentation", "endpoint")),
)


class CommandRouter:
    def __init__(
        self,
        rules: tuple[tuple[CommandCategory, tuple[str, ...]], ...] = KEYWORD_RULES,
    ) -> None:
        self._rules = rules

    def classify(self, transcript: str) -> CommandCategory:
        lower = transcript.lower()
        for category, keywords in self._rules:
            if any(keyword in lower for keyword in keywords):
                return category
        return CommandCategory.DEFAULT


def detect_command_type(transcript: str) -> CommandCategory:
    return CommandRouter().classify(transcript)

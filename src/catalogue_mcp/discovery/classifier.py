"""Keyword classifier for discovered servers.

Best-effort heuristic: rules are checked in order and the first rule whose
keywords appear in the server name or in its tool names wins. Matching is
by substring, so "ai" also matches inside longer words.
"""

from typing import Iterable, List, NamedTuple, Tuple

from .discovery_types import ServerCategory


class CategoryRule(NamedTuple):
    category: ServerCategory
    name_keywords: Tuple[str, ...]
    tool_keywords: Tuple[str, ...]


# Priority order, first match wins
CATEGORY_RULES: List[CategoryRule] = [
    CategoryRule(ServerCategory.DOCUMENTATION,
                 ("context7", "documentation", "docs"),
                 ("library", "documentation")),
    CategoryRule(ServerCategory.CODE_ANALYSIS,
                 ("serena", "code", "analysis"),
                 ("symbol", "refactor")),
    CategoryRule(ServerCategory.PROJECT_MANAGEMENT,
                 ("archon", "project", "task"),
                 ("project", "task", "rag")),
    CategoryRule(ServerCategory.FILESYSTEM,
                 ("file", "filesystem"),
                 ("file", "read", "write")),
    CategoryRule(ServerCategory.DATABASE,
                 ("database", "db", "sql"),
                 ("query", "database")),
    CategoryRule(ServerCategory.WEB,
                 ("web", "http", "api"),
                 ("fetch", "request")),
    CategoryRule(ServerCategory.AI,
                 ("ai", "llm", "claude", "openai"),
                 ("generate", "completion")),
]


def categorize_server(name: str, tool_names: Iterable[str] = ()) -> ServerCategory:
    """Assign exactly one category from the server name and tool names.

    Args:
        name: Declared server name
        tool_names: Names of the tools the server declares

    Returns:
        The first matching category, or ServerCategory.OTHER
    """
    lower_name = (name or "").lower()
    tools_text = " ".join(tool_names).lower()

    for rule in CATEGORY_RULES:
        if any(keyword in lower_name for keyword in rule.name_keywords):
            return rule.category
        if any(keyword in tools_text for keyword in rule.tool_keywords):
            return rule.category

    return ServerCategory.OTHER

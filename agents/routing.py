# agents/routing.py

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple

from llm.backend_client import ChatBackend, LlmError
from llm.chat_schema import CompletionConfig
from utils.logger import logger


class RoutingStrategy(str, Enum):
    INTENT = "intent"
    KEYWORD = "keyword"
    PREFERRED = "preferred"
    ROUND_ROBIN = "round_robin"

    @classmethod
    def parse(cls, value: str) -> "RoutingStrategy":
        key = value.strip().lower().replace("-", "_")
        aliases = {"roundrobin": "round_robin", "rr": "round_robin", "keywords": "keyword"}
        return cls(aliases.get(key, key))


@dataclass(frozen=True)
class KeywordRoute:
    category: str
    keywords: Tuple[str, ...]
    agent_names: Tuple[str, ...]

    def matches(self, lowered_message: str) -> bool:
        return any(keyword in lowered_message for keyword in self.keywords)


# priority order matters: the first matching category with a registered agent wins
DEFAULT_KEYWORD_ROUTES: Tuple[KeywordRoute, ...] = (
    KeywordRoute("code", ("code", "review", "refactor", "bug", "function"),
                 ("CodeAssistant", "Code")),
    KeywordRoute("devops", ("deploy", "service", "log", "infrastructure", "monitoring"),
                 ("DevOpsAgent", "DevOps")),
    KeywordRoute("documentation", ("document", "docs", "api", "readme"),
                 ("DocumentationAgent", "Documentation", "Docs")),
    KeywordRoute("testing", ("test", "coverage", "unittest"),
                 ("TestingAgent", "Testing")),
    KeywordRoute("data-analysis", ("data", "analyze", "statistics", "metrics"),
                 ("DataAnalystAgent", "DataAnalyst", "Data")),
    KeywordRoute("security", ("security", "vulnerabilit", "encryption", "authentication"),
                 ("SecurityAgent", "Security")),
)

INTENT_CONFIG = CompletionConfig(max_tokens=50, temperature=0.1)


def route_by_keywords(
    message: str,
    agent_names: Sequence[str],
    routes: Sequence[KeywordRoute] = DEFAULT_KEYWORD_ROUTES,
) -> Optional[str]:
    """
    Pick an agent by substring keywords.

    Falls back to the first registered agent when nothing matches; returns
    None only when agent_names is empty.
    """
    if not agent_names:
        return None
    registered = set(agent_names)
    lowered = message.lower()
    for route in routes:
        if not route.matches(lowered):
            continue
        for candidate in route.agent_names:
            if candidate in registered:
                return candidate
    return agent_names[0]


def build_intent_prompt(message: str, agent_names: Sequence[str]) -> str:
    lines = [
        "Analyze the following user request and determine which specialized agent should handle it.",
        "",
        "Available agents:",
    ]
    lines += [f"- {name}" for name in agent_names]
    lines += ["", f"User request: {message}", "", "Respond with ONLY the agent name, nothing else."]
    return "\n".join(lines)


def route_by_intent(message: str, agent_names: Sequence[str], backend: Optional[ChatBackend]) -> Optional[str]:
    """Ask the model for an agent name; None when it cannot give a registered one."""
    if backend is None or not agent_names:
        return None
    try:
        answer = backend.complete(build_intent_prompt(message, agent_names), INTENT_CONFIG)
    except LlmError as e:
        logger.warning(f"[Routing] Intent routing failed, falling back to keywords: {e}")
        return None
    candidate = (answer or "").strip()
    if candidate in agent_names:
        return candidate
    logger.debug(f"[Routing] Model suggested unknown agent {candidate!r}")
    return None


def resolve_category(
    category: str,
    agent_names: Sequence[str],
    routes: Sequence[KeywordRoute] = DEFAULT_KEYWORD_ROUTES,
) -> Optional[str]:
    """Registered agent serving a category, if any."""
    registered = set(agent_names)
    for route in routes:
        if route.category == category:
            return next((n for n in route.agent_names if n in registered), None)
    return None


def category_of(agent_name: str, routes: Sequence[KeywordRoute] = DEFAULT_KEYWORD_ROUTES) -> Optional[str]:
    for route in routes:
        if agent_name in route.agent_names:
            return route.category
    return None


FOLLOWUP_WORDS = ("then", "after", "next", "also")

# (from category, word in the message, to category)
FOLLOWUP_CHAINS = (
    ("code", "test", "testing"),
    ("code", "deploy", "devops"),
    ("testing", "document", "documentation"),
)


def suggest_next_agent(
    agent_name: str,
    message: str,
    agent_names: Sequence[str],
    stopped_by_limit: bool = False,
) -> Optional[str]:
    lowered = message.lower()
    words = set(lowered.replace(",", " ").replace(".", " ").split())
    if not stopped_by_limit and not words.intersection(FOLLOWUP_WORDS):
        return None

    current = category_of(agent_name)
    for source, keyword, target in FOLLOWUP_CHAINS:
        if source == current and keyword in lowered:
            candidate = resolve_category(target, agent_names)
            if candidate and candidate != agent_name:
                return candidate
    return None

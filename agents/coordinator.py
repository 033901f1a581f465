# agents/coordinator.py

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from agents.agent import Agent, AgentError
from agents.routing import (
    RoutingStrategy,
    route_by_intent,
    route_by_keywords,
    suggest_next_agent,
)
from agents.session import Session, SessionStore
from llm.backend_client import ChatBackend
from utils.logger import logger


class CoordinatorError(Exception):
    pass


class RoutingError(CoordinatorError):
    """No agent could be selected."""


class CollaborationError(CoordinatorError):
    """A collaboration produced no usable response."""


@dataclass
class UserRequest:
    message: str
    user_id: str = "default"
    session_id: Optional[str] = None
    preferred_agent: Optional[str] = None
    context: Dict[str, str] = field(default_factory=dict)


@dataclass
class CoordinatorResponse:
    agent_name: str
    response: str
    tool_results: List[str] = field(default_factory=list)
    requires_followup: bool = False
    next_agent_suggestion: Optional[str] = None
    agents_used: int = 1


class Coordinator:
    """
    Owns the agents, picks one per request, runs multi-agent
    collaborations and keeps sessions and usage counters.

    The agent table (with the round-robin cursor), the usage counters and
    the session store each have their own lock; agents run outside all of
    them.
    """

    def __init__(
        self,
        backend: Optional[ChatBackend] = None,
        strategy: RoutingStrategy = RoutingStrategy.INTENT,
        session_ttl: Optional[float] = None,
    ):
        self.backend = backend
        self.strategy = strategy

        self._agents: Dict[str, Agent] = {}
        self._round_robin_index = 0
        self._agents_lock = threading.Lock()

        self._usage: Dict[str, int] = {}
        self._usage_lock = threading.Lock()

        self.sessions = SessionStore(ttl=session_ttl)

    # ─── agents ──────────────────────────────────────────────

    def register_agent(self, name: str, agent: Agent) -> None:
        with self._agents_lock:
            self._agents[name] = agent
        with self._usage_lock:
            self._usage.setdefault(name, 0)
        logger.info(f"[Coordinator] Registered agent: {name}")

    def remove_agent(self, name: str) -> bool:
        with self._agents_lock:
            removed = self._agents.pop(name, None) is not None
        if removed:
            logger.info(f"[Coordinator] Removed agent: {name}")
        return removed

    def list_agents(self) -> List[str]:
        with self._agents_lock:
            return list(self._agents)

    def get_agent(self, name: str) -> Optional[Agent]:
        with self._agents_lock:
            return self._agents.get(name)

    def set_routing_strategy(self, strategy: RoutingStrategy) -> None:
        self.strategy = RoutingStrategy(strategy)
        logger.info(f"[Coordinator] Routing strategy: {self.strategy.value}")

    def clear_conversations(self) -> None:
        with self._agents_lock:
            agents = list(self._agents.values())
        for agent in agents:
            agent.clear_conversation()

    # ─── sessions ────────────────────────────────────────────

    def create_session(self, session_id: str, user_id: str) -> Session:
        logger.info(f"[Coordinator] Session created: {session_id} (user {user_id})")
        return self.sessions.create(session_id, user_id)

    def end_session(self, session_id: str) -> bool:
        return self.sessions.end(session_id)

    def get_session(self, session_id: str) -> Optional[Session]:
        return self.sessions.get(session_id)

    def update_session_context(self, session_id: str, key: str, value: str) -> None:
        self.sessions.update_context(session_id, key, value)

    def get_active_sessions_count(self) -> int:
        return len(self.sessions)

    # ─── usage ───────────────────────────────────────────────

    def _record_usage(self, name: str) -> None:
        with self._usage_lock:
            self._usage[name] = self._usage.get(name, 0) + 1

    def get_agent_usage_stats(self) -> Dict[str, int]:
        with self._usage_lock:
            return dict(self._usage)

    # ─── routing ─────────────────────────────────────────────

    def _next_round_robin(self) -> str:
        # caller holds the agents lock
        names = list(self._agents)
        name = names[self._round_robin_index % len(names)]
        self._round_robin_index = (self._round_robin_index + 1) % len(names)
        return name

    def route(self, request: UserRequest) -> str:
        with self._agents_lock:
            names = list(self._agents)
            if not names:
                raise RoutingError("No agents registered")
            if request.preferred_agent and request.preferred_agent in self._agents:
                return request.preferred_agent
            if self.strategy == RoutingStrategy.ROUND_ROBIN:
                return self._next_round_robin()

        if self.strategy == RoutingStrategy.INTENT:
            chosen = route_by_intent(request.message, names, self.backend)
            if chosen:
                return chosen
        return route_by_keywords(request.message, names)

    # ─── requests ────────────────────────────────────────────

    def _run_agent(self, name: str, message: str):
        agent = self.get_agent(name)
        if agent is None:
            return None
        result = agent.process(message)
        self._record_usage(name)
        return result

    def handle_request(self, request: UserRequest) -> CoordinatorResponse:
        name = self.route(request)
        logger.info(f"[Coordinator] Routing request to {name}")

        if request.session_id:
            self.sessions.record_request(request.session_id, request)
            for key, value in request.context.items():
                self.sessions.update_context(request.session_id, key, value)

        try:
            result = self._run_agent(name, request.message)
        except AgentError as e:
            logger.error(f"[Coordinator] Agent {name} failed: {e}")
            raise CoordinatorError(f"Agent {name} failed: {e}") from e
        if result is None:
            raise RoutingError(f"Agent {name} was removed before it could run")

        return CoordinatorResponse(
            agent_name=name,
            response=result.content,
            tool_results=list(result.tool_calls_made),
            requires_followup=result.stopped_by_limit,
            next_agent_suggestion=suggest_next_agent(
                name, request.message, self.list_agents(), result.stopped_by_limit
            ),
        )

    def collaborate(self, task: str, agent_names: Sequence[str]) -> CoordinatorResponse:
        """
        Run the task through each named agent in turn.

        Unknown names are skipped; a failing agent is logged and skipped.
        Raises CollaborationError when nothing usable came back.
        """
        logger.info(f"[Coordinator] Collaboration on task with {len(agent_names)} agent(s)")
        sections: List[str] = []
        tools_used: List[str] = []
        contributors: List[str] = []

        for name in agent_names:
            try:
                result = self._run_agent(name, task)
            except AgentError as e:
                logger.warning(f"[Coordinator] {name} failed during collaboration: {e}")
                continue
            if result is None:
                logger.debug(f"[Coordinator] Skipping unknown agent {name}")
                continue
            contributors.append(name)
            tools_used.extend(result.tool_calls_made)
            sections.append(f"## {name}\n\n{result.content}")

        if not contributors:
            raise CollaborationError("No agents were able to process the request")

        summary = f"Summary: {len(contributors)} agent(s) contributed ({', '.join(contributors)})."
        return CoordinatorResponse(
            agent_name="Collaboration",
            response="\n\n".join(sections) + f"\n\n---\n{summary}",
            tool_results=tools_used,
            agents_used=len(contributors),
        )

# app/api.py

import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from agents.coordinator import Coordinator, CoordinatorError, UserRequest
from utils.logger import logger

MAX_LOG_ENTRIES = 1000


class SessionRequest(BaseModel):
    user_id: str
    session_id: Optional[str] = None


class ChatRequest(BaseModel):
    message: str = Field(min_length=1)
    user_id: str = "default"
    session_id: Optional[str] = None
    preferred_agent: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)


class CollaborateRequest(BaseModel):
    task: str = Field(min_length=1)
    agents: List[str] = Field(min_length=1)


@dataclass
class EndpointMetrics:
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_ms: float = 0.0
    min_ms: Optional[float] = None
    max_ms: float = 0.0

    def record(self, duration_ms: float, success: bool) -> None:
        self.total_requests += 1
        if success:
            self.successful_requests += 1
        else:
            self.failed_requests += 1
        self.total_ms += duration_ms
        self.min_ms = duration_ms if self.min_ms is None else min(self.min_ms, duration_ms)
        self.max_ms = max(self.max_ms, duration_ms)

    def to_dict(self) -> Dict[str, Any]:
        average = self.total_ms / self.total_requests if self.total_requests else 0.0
        return {
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "failed_requests": self.failed_requests,
            "average_duration_ms": round(average, 3),
            "min_duration_ms": round(self.min_ms or 0.0, 3),
            "max_duration_ms": round(self.max_ms, 3),
        }


class RequestTracker:
    """Per-endpoint metrics plus a bounded request log."""

    def __init__(self, max_entries: int = MAX_LOG_ENTRIES):
        self._metrics: Dict[str, EndpointMetrics] = {}
        self._logs: Deque[Dict[str, Any]] = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    def record(self, entry: Dict[str, Any]) -> None:
        with self._lock:
            metrics = self._metrics.setdefault(entry["endpoint"], EndpointMetrics())
            metrics.record(entry["duration_ms"], entry["status_code"] < 400)
            self._logs.append(entry)

    def metrics(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {endpoint: m.to_dict() for endpoint, m in self._metrics.items()}

    def logs(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        with self._lock:
            entries = list(self._logs)
        return entries[-limit:] if limit else entries


def ok(data: Any) -> Dict[str, Any]:
    return {"success": True, "data": data}


def create_app(coordinator: Coordinator) -> FastAPI:
    app = FastAPI(title="AgentDesk API")
    tracker = RequestTracker()
    app.state.coordinator = coordinator
    app.state.tracker = tracker

    @app.middleware("http")
    async def track_requests(request: Request, call_next):
        request_id = uuid.uuid4().hex[:12]
        request.state.user_id = ""
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000

        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)
        if endpoint.startswith("/api/"):
            tracker.record({
                "request_id": request_id,
                "endpoint": endpoint,
                "method": request.method,
                "user_id": request.state.user_id,
                "duration_ms": round(duration_ms, 3),
                "status_code": response.status_code,
                "timestamp": time.time(),
            })
        logger.debug(f"[API] {request.method} {request.url.path} -> {response.status_code} ({duration_ms:.1f} ms)")
        return response

    @app.get("/health")
    def health():
        return {"status": "ok", "service": "agentdesk-api"}

    @app.get("/api/agents")
    def list_agents():
        agents = coordinator.list_agents()
        return ok({"agents": agents, "count": len(agents)})

    @app.post("/api/sessions", status_code=201)
    def create_session(body: SessionRequest, request: Request):
        request.state.user_id = body.user_id
        session_id = body.session_id or uuid.uuid4().hex
        coordinator.create_session(session_id, body.user_id)
        return ok({"session_id": session_id, "user_id": body.user_id})

    @app.get("/api/sessions/{session_id}")
    def get_session(session_id: str):
        session = coordinator.get_session(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
        return ok({
            "session_id": session.session_id,
            "user_id": session.user_id,
            "context": session.context,
            "request_count": len(session.request_history),
            "created_at": session.created_at,
            "last_activity": session.last_activity,
        })

    @app.delete("/api/sessions/{session_id}")
    def end_session(session_id: str):
        if not coordinator.end_session(session_id):
            raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
        return ok({"session_id": session_id, "ended": True})

    @app.post("/api/chat")
    def chat(body: ChatRequest, request: Request):
        request.state.user_id = body.user_id
        user_request = UserRequest(
            message=body.message,
            user_id=body.user_id,
            session_id=body.session_id,
            preferred_agent=body.preferred_agent,
            context=dict(body.metadata),
        )
        try:
            result = coordinator.handle_request(user_request)
        except CoordinatorError as e:
            raise HTTPException(status_code=500, detail=str(e))

        data = {
            "agent": result.agent_name,
            "response": result.response,
            "tool_results": result.tool_results,
            "requires_followup": result.requires_followup,
            "agents_used": result.agents_used,
        }
        if result.next_agent_suggestion:
            data["next_agent"] = result.next_agent_suggestion
        return ok(data)

    @app.post("/api/collaborate")
    def collaborate(body: CollaborateRequest):
        try:
            result = coordinator.collaborate(body.task, body.agents)
        except CoordinatorError as e:
            raise HTTPException(status_code=500, detail=str(e))
        return ok({
            "agent": result.agent_name,
            "response": result.response,
            "tool_results": result.tool_results,
            "agents_used": result.agents_used,
        })

    @app.get("/api/metrics")
    def metrics():
        return ok(tracker.metrics())

    @app.get("/api/logs")
    def logs(limit: Optional[int] = None):
        if limit is not None and limit < 1:
            raise HTTPException(status_code=400, detail="limit must be positive")
        entries = tracker.logs(limit)
        return ok({"logs": entries, "count": len(entries)})

    @app.get("/api/stats")
    def stats():
        return ok({
            "agent_usage": coordinator.get_agent_usage_stats(),
            "active_sessions": coordinator.get_active_sessions_count(),
            "routing_strategy": coordinator.strategy.value,
        })

    return app

# app/cli.py

import argparse
import asyncio
import uuid
from typing import Dict, List, Optional

from agents.coordinator import Coordinator, CoordinatorError, CoordinatorResponse, UserRequest
from agents.presets import register_default_agents
from agents.routing import RoutingStrategy
from app.config import ConfigError, Settings
from llm.backend_client import LlmClient, LlmError
from utils.logger import configure_logging, logger

HELP_TEXT = """
Available commands:

  /help                          Show this help message
  /agents                        List all available agents
  /stats                         Show agent usage statistics
  /session                       Show current session info
  /agent <name|none>             Set or clear the preferred agent
  /routing <strategy>            intent, keyword or roundrobin
  /collaborate <A,B,...> <task>  Run a task through several agents
  /context <key> <value>         Set session context
  /clear                         Clear conversation history
  /quit or /exit                 Exit

Anything else is sent to the agents as a chat message.
"""


def format_response(response: CoordinatorResponse) -> str:
    header = f"Response from: {response.agent_name}"
    if response.agents_used > 1:
        header += f" ({response.agents_used} agents)"
    lines = [header]
    if response.tool_results:
        lines.append(f"Tools used: {', '.join(response.tool_results)}")
    lines.append("")
    lines.append(response.response)
    if response.requires_followup:
        lines.append("")
        lines.append("(requires follow-up)")
    if response.next_agent_suggestion:
        lines.append(f"Suggested next agent: {response.next_agent_suggestion}")
    return "\n".join(lines)


class ChatShell:
    """Line-oriented front-end over a Coordinator."""

    def __init__(self, coordinator: Coordinator, user_id: str = "cli-user", output=print):
        self.coordinator = coordinator
        self.user_id = user_id
        self.output = output
        self.session_id = f"cli-{uuid.uuid4().hex[:8]}"
        self.preferred_agent: Optional[str] = None
        self.message_count = 0
        coordinator.create_session(self.session_id, user_id)

    def handle_line(self, line: str) -> bool:
        """Process one input line; False means the shell should exit."""
        line = line.strip()
        if not line:
            return True
        if line.startswith("/"):
            return self.handle_command(line)
        self.chat(line)
        return True

    def chat(self, message: str) -> None:
        request = UserRequest(
            message=message,
            user_id=self.user_id,
            session_id=self.session_id,
            preferred_agent=self.preferred_agent,
        )
        try:
            response = self.coordinator.handle_request(request)
        except CoordinatorError as e:
            self.output(f"Error: {e}")
            return
        self.message_count += 1
        self.output(format_response(response))

    def handle_command(self, line: str) -> bool:
        command, _, rest = line.partition(" ")
        rest = rest.strip()
        command = command.lower()

        if command in ("/quit", "/exit", "/q"):
            self.coordinator.end_session(self.session_id)
            self.output("Goodbye!")
            return False
        if command in ("/help", "/h", "/?"):
            self.output(HELP_TEXT)
        elif command == "/agents":
            agents = self.coordinator.list_agents()
            self.output(f"Available agents ({len(agents)}):")
            for name in agents:
                self.output(f"  - {name}")
        elif command == "/stats":
            self._show_stats()
        elif command == "/session":
            self._show_session()
        elif command == "/agent":
            self._set_agent(rest)
        elif command == "/routing":
            self._set_routing(rest)
        elif command == "/collaborate":
            self._collaborate(rest)
        elif command == "/context":
            key, _, value = rest.partition(" ")
            if not key or not value.strip():
                self.output("Usage: /context <key> <value>")
            else:
                self.coordinator.update_session_context(self.session_id, key, value.strip())
                self.output(f"Set context: {key} = {value.strip()}")
        elif command == "/clear":
            self.coordinator.clear_conversations()
            self.output("Conversation history cleared")
        else:
            self.output(f"Unknown command: {command} (try /help)")
        return True

    def _show_stats(self) -> None:
        stats: Dict[str, int] = self.coordinator.get_agent_usage_stats()
        total = sum(stats.values())
        self.output("Agent usage:")
        if not total:
            self.output("  No requests processed yet.")
        for name, count in stats.items():
            if count:
                self.output(f"  {name}: {count} requests ({100.0 * count / total:.1f}%)")
        if total:
            self.output(f"  Total requests: {total}")
        self.output(f"  Active sessions: {self.coordinator.get_active_sessions_count()}")

    def _show_session(self) -> None:
        self.output(f"Session ID: {self.session_id}")
        self.output(f"User ID: {self.user_id}")
        self.output(f"Messages: {self.message_count}")
        self.output(f"Routing: {self.coordinator.strategy.value}")
        if self.preferred_agent:
            self.output(f"Preferred agent: {self.preferred_agent}")
        session = self.coordinator.get_session(self.session_id)
        if session and session.context:
            self.output("Context:")
            for key, value in session.context.items():
                self.output(f"  {key} = {value}")

    def _set_agent(self, name: str) -> None:
        if not name or name.lower() == "none":
            self.preferred_agent = None
            self.output("Cleared preferred agent")
        elif self.coordinator.get_agent(name) is None:
            self.output(f"Unknown agent: {name}")
        else:
            self.preferred_agent = name
            self.output(f"Set preferred agent to: {name}")

    def _set_routing(self, value: str) -> None:
        try:
            strategy = RoutingStrategy.parse(value)
        except ValueError:
            self.output("Unknown routing strategy. Use: intent, keyword, or roundrobin")
            return
        self.coordinator.set_routing_strategy(strategy)
        self.output(f"Set routing to {strategy.value}")

    def _collaborate(self, rest: str) -> None:
        names, _, task = rest.partition(" ")
        agent_names: List[str] = [n.strip() for n in names.split(",") if n.strip()]
        if not agent_names or not task.strip():
            self.output("Usage: /collaborate <Agent1,Agent2,...> <task>")
            return
        try:
            response = self.coordinator.collaborate(task.strip(), agent_names)
        except CoordinatorError as e:
            self.output(f"Error: {e}")
            return
        self.message_count += 1
        self.output(format_response(response))

    def run(self) -> None:
        self.output("AgentDesk - multi-agent development assistant. Type /help for commands.")
        while True:
            try:
                line = input("> ")
            except (EOFError, KeyboardInterrupt):
                self.output("")
                break
            if not self.handle_line(line):
                break


def build_coordinator(settings: Settings) -> Coordinator:
    backend = LlmClient(settings.llm_url, settings.llm_timeout)
    coordinator = Coordinator(
        backend=backend,
        strategy=RoutingStrategy.parse(settings.routing),
        session_ttl=settings.session_ttl,
    )
    register_default_agents(coordinator, backend, verbose=settings.verbose)
    return coordinator


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="agentdesk", description="Multi-agent development assistant")
    parser.add_argument("--env-file", action="append", dest="env_files",
                        help="dotenv file to load (repeatable, default .env)")
    parser.add_argument("--verbose", action="store_true", help="log agent loops at INFO")

    sub = parser.add_subparsers(dest="command")
    sub.add_parser("chat", help="interactive shell (default)")
    serve = sub.add_parser("serve", help="run the REST API")
    serve.add_argument("--host")
    serve.add_argument("--port", type=int)
    tools_host = sub.add_parser("tools-host", help="expose the built-in tools over WebSockets")
    tools_host.add_argument("--host")
    tools_host.add_argument("--port", type=int)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = Settings.from_env(env_files=args.env_files)
    except ConfigError as e:
        parser.error(str(e))
    if args.verbose:
        settings.verbose = True
    configure_logging(settings.log_level)

    command = args.command or "chat"
    if command == "tools-host":
        from protocol.host import build_default_server, run_host

        asyncio.run(run_host(build_default_server(), args.host or settings.ws_host, args.port or settings.ws_port))
        return 0

    coordinator = build_coordinator(settings)
    try:
        if not coordinator.backend.health_check():
            logger.warning(f"[CLI] Model server at {settings.llm_url} is not healthy")
    except LlmError as e:
        logger.warning(f"[CLI] Model server unreachable at {settings.llm_url}: {e}")

    if command == "serve":
        import uvicorn

        from app.api import create_app

        uvicorn.run(create_app(coordinator), host=args.host or settings.api_host, port=args.port or settings.api_port)
        return 0

    ChatShell(coordinator).run()
    return 0

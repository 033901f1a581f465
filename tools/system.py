# tools/system.py

import subprocess
from pathlib import Path
from typing import Any, Dict

from protocol.message_schema import ToolParameter, ToolResult
from protocol.server import ToolServer
from utils.logger import logger

DEFAULT_COMMAND_TIMEOUT = 60


def execute_command(args: Dict[str, Any]) -> ToolResult:
    """Run a shell command; stdout and stderr come back merged."""
    command = args["command"]
    working_dir = args.get("working_dir", ".")
    timeout = args.get("timeout", DEFAULT_COMMAND_TIMEOUT)

    if not Path(working_dir).is_dir():
        return ToolResult.error(f"Working directory does not exist: {working_dir}")

    logger.info(f"[Tools] execute_command in {working_dir}: {command}")
    try:
        result = subprocess.run(
            command,
            shell=True,
            cwd=working_dir,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired:
        return ToolResult.error(f"Command timed out after {timeout}s: {command}")
    except OSError as e:
        return ToolResult.error(f"Failed to execute command: {e}")

    return ToolResult.structured(
        {"exit_code": result.returncode, "output": result.stdout},
        is_error=result.returncode != 0,
    )


def register_system_tools(server: ToolServer) -> None:
    server.register_tool(
        "execute_command",
        "Execute a shell command and return its output",
        [
            ToolParameter(name="command", type="string", description="Shell command to execute"),
            ToolParameter(name="working_dir", type="string", description="Working directory for the command",
                          required=False, default="."),
            ToolParameter(name="timeout", type="number", description="Timeout in seconds",
                          required=False, default=DEFAULT_COMMAND_TIMEOUT),
        ],
        execute_command,
    )

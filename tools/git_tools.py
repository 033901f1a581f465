# tools/git_tools.py

import subprocess
from pathlib import Path
from typing import Any, Callable, Dict, List

from protocol.message_schema import ToolParameter, ToolResult
from protocol.server import ToolServer

Runner = Callable[[List[str]], subprocess.CompletedProcess]


def _default_runner(args: List[str]) -> subprocess.CompletedProcess:
    return subprocess.run(args, check=False, capture_output=True, text=True)


class GitTools:
    """Read-only git queries, run through an injectable subprocess runner."""

    def __init__(self, runner: Runner = _default_runner, executable: str = "git"):
        self.runner = runner
        self.executable = executable

    def _git(self, repo_path: str, *args: str) -> ToolResult:
        if not Path(repo_path).is_dir():
            return ToolResult.error(f"Repository path does not exist: {repo_path}")
        command = [self.executable, "-C", repo_path, *args]
        try:
            result = self.runner(command)
        except OSError as e:
            return ToolResult.error(f"Failed to run git: {e}")
        if result.returncode != 0:
            return ToolResult.error(result.stderr.strip() or result.stdout.strip() or "git command failed")
        return ToolResult.text(result.stdout)

    def status(self, args: Dict[str, Any]) -> ToolResult:
        return self._git(args["repo_path"], "status", "--short", "--branch")

    def log(self, args: Dict[str, Any]) -> ToolResult:
        limit = args.get("limit", 10)
        if limit < 1:
            return ToolResult.error("limit must be at least 1")
        return self._git(args["repo_path"], "log", "--oneline", "-n", str(limit))

    def diff(self, args: Dict[str, Any]) -> ToolResult:
        extra = ["--", args["file"]] if args.get("file") else []
        return self._git(args["repo_path"], "diff", *extra)

    def branch_list(self, args: Dict[str, Any]) -> ToolResult:
        return self._git(args["repo_path"], "branch", "-a")

    def register(self, server: ToolServer) -> None:
        repo = ToolParameter(name="repo_path", type="string", description="Path to the git repository")
        server.register_tool("git_status", "Show the working tree status", [repo], self.status)
        server.register_tool(
            "git_log",
            "Show recent commits",
            [repo, ToolParameter(name="limit", type="integer", description="Maximum number of commits to show",
                                 required=False, default=10)],
            self.log,
        )
        server.register_tool(
            "git_diff",
            "Show unstaged changes",
            [repo, ToolParameter(name="file", type="string", description="Limit the diff to one file",
                                 required=False)],
            self.diff,
        )
        server.register_tool("git_branch_list", "List local and remote branches", [repo], self.branch_list)


def register_git_tools(server: ToolServer, runner: Runner = _default_runner) -> None:
    GitTools(runner).register(server)

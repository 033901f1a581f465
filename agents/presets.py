# agents/presets.py

"""
Specialised personas as data.

Each preset is a row of configuration over the one generic Agent; there
are no per-persona classes.
"""

from dataclasses import dataclass, replace
from typing import Dict, Tuple

from agents.agent import Agent, AgentConfig
from llm.backend_client import ChatBackend
from llm.chat_schema import CompletionConfig
from tools import TOOLSETS


@dataclass(frozen=True)
class AgentPreset:
    name: str
    system_prompt: str
    temperature: float
    max_tokens: int
    max_tool_iterations: int
    toolsets: Tuple[str, ...] = ("filesystem", "git", "system")

    def to_config(self, version: str = "1.0.0", verbose: bool = False) -> AgentConfig:
        return AgentConfig(
            name=self.name,
            version=version,
            system_prompt=self.system_prompt,
            llm_config=CompletionConfig(temperature=self.temperature, max_tokens=self.max_tokens),
            max_tool_iterations=self.max_tool_iterations,
            verbose=verbose,
        )


PRESETS: Dict[str, AgentPreset] = {
    preset.name: preset
    for preset in (
        AgentPreset(
            name="CodeAssistant",
            system_prompt=(
                "You are a senior software developer. You analyse code for bugs and performance "
                "problems, write clean and documented code, explain algorithms and suggest "
                "refactorings. Read the actual files with your file system tools before you "
                "answer, and follow the style of the existing project."
            ),
            temperature=0.3,
            max_tokens=2048,
            max_tool_iterations=15,
        ),
        AgentPreset(
            name="DevOpsAgent",
            system_prompt=(
                "You are a DevOps engineer. You manage infrastructure, CI/CD pipelines, containers, "
                "deployments and monitoring. You can read configuration files, query git and run "
                "system commands. Prefer automation and infrastructure-as-code, and explain every "
                "change you make."
            ),
            temperature=0.2,
            max_tokens=1536,
            max_tool_iterations=20,
        ),
        AgentPreset(
            name="DocumentationAgent",
            system_prompt=(
                "You are a technical writer. You produce API references, guides, READMEs and "
                "architecture notes in clear Markdown with practical examples. Read the source "
                "before documenting it and write for the stated audience."
            ),
            temperature=0.4,
            max_tokens=2048,
            max_tool_iterations=12,
            toolsets=("filesystem", "git"),
        ),
        AgentPreset(
            name="TestingAgent",
            system_prompt=(
                "You are a QA engineer. You write unit, integration and end-to-end tests, find edge "
                "cases and review coverage. Tests follow Arrange-Act-Assert, cover failure paths and "
                "have descriptive names."
            ),
            temperature=0.3,
            max_tokens=2048,
            max_tool_iterations=15,
        ),
        AgentPreset(
            name="DataAnalystAgent",
            system_prompt=(
                "You are a data analyst. You clean and process datasets, run statistics, find "
                "patterns and report actionable insights. State your assumptions and check data "
                "quality before drawing conclusions."
            ),
            temperature=0.4,
            max_tokens=1536,
            max_tool_iterations=12,
        ),
        AgentPreset(
            name="SecurityAgent",
            system_prompt=(
                "You are an application security engineer. You review code for vulnerabilities "
                "(OWASP Top 10), authentication and authorization flaws and weak cryptography, and "
                "recommend specific, prioritised fixes."
            ),
            temperature=0.2,
            max_tokens=2048,
            max_tool_iterations=15,
            toolsets=("filesystem", "git"),
        ),
    )
}


def build_agent(preset_name: str, backend: ChatBackend, verbose: bool = False, **overrides) -> Agent:
    """
    Build an Agent from a named preset.

    overrides replace preset fields (e.g. max_tool_iterations=3,
    toolsets=()). Raises KeyError for an unknown preset.
    """
    if preset_name not in PRESETS:
        raise KeyError(f"Unknown agent preset '{preset_name}'. Known: {', '.join(PRESETS)}")
    preset = replace(PRESETS[preset_name], **overrides) if overrides else PRESETS[preset_name]

    agent = Agent(preset.to_config(verbose=verbose), backend)
    for toolset in preset.toolsets:
        TOOLSETS[toolset](agent.server)
    return agent


def register_default_agents(coordinator, backend: ChatBackend, verbose: bool = False) -> None:
    for name in PRESETS:
        coordinator.register_agent(name, build_agent(name, backend, verbose=verbose))

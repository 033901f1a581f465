from tools.filesystem import register_filesystem_tools
from tools.git_tools import register_git_tools
from tools.system import register_system_tools

TOOLSETS = {
    "filesystem": register_filesystem_tools,
    "git": register_git_tools,
    "system": register_system_tools,
}


def register_default_tools(server) -> None:
    for register in TOOLSETS.values():
        register(server)

# tools/filesystem.py

import re
import shutil
from datetime import datetime
from pathlib import Path
from typing import Any, Dict

from protocol.message_schema import ToolParameter, ToolResult
from protocol.server import ToolServer


def read_file(args: Dict[str, Any]) -> ToolResult:
    path = Path(args["path"])
    try:
        return ToolResult.text(path.read_text(encoding="utf-8"))
    except OSError as e:
        return ToolResult.error(f"Failed to open file: {path} ({e.strerror or e})")
    except UnicodeDecodeError:
        return ToolResult.error(f"File is not UTF-8 text: {path}")


def write_file(args: Dict[str, Any]) -> ToolResult:
    path = Path(args["path"])
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(args["content"], encoding="utf-8")
    except OSError as e:
        return ToolResult.error(f"Failed to open file for writing: {path} ({e.strerror or e})")
    return ToolResult.text(f"File written successfully: {path}")


def _entry(path: Path) -> Dict[str, Any]:
    item: Dict[str, Any] = {
        "name": path.name,
        "path": str(path),
        "is_directory": path.is_dir(),
        "is_file": path.is_file(),
    }
    if path.is_file():
        item["size"] = path.stat().st_size
    return item


def list_directory(args: Dict[str, Any]) -> ToolResult:
    path = Path(args["path"])
    if not path.exists():
        return ToolResult.error(f"Directory does not exist: {path}")
    if not path.is_dir():
        return ToolResult.error(f"Path is not a directory: {path}")
    entries = [_entry(child) for child in sorted(path.iterdir())]
    return ToolResult.structured(entries)


def search_files(args: Dict[str, Any]) -> ToolResult:
    """Match file names (not contents) against a regex."""
    root = Path(args["path"])
    if not root.is_dir():
        return ToolResult.error(f"Path is not a directory: {root}")
    try:
        pattern = re.compile(args["pattern"])
    except re.error as e:
        return ToolResult.error(f"Invalid pattern: {e}")

    candidates = root.rglob("*") if args.get("recursive", True) else root.iterdir()
    matches = sorted(str(p) for p in candidates if p.is_file() and pattern.search(p.name))
    return ToolResult.structured({"matches": matches, "count": len(matches)})


def file_info(args: Dict[str, Any]) -> ToolResult:
    path = Path(args["path"])
    if not path.exists():
        return ToolResult.error(f"Path does not exist: {path}")
    stat = path.stat()
    return ToolResult.structured({
        "path": str(path),
        "exists": True,
        "is_directory": path.is_dir(),
        "is_file": path.is_file(),
        "is_symlink": path.is_symlink(),
        "size": stat.st_size if path.is_file() else 0,
        "modified": datetime.fromtimestamp(stat.st_mtime).isoformat(timespec="seconds"),
        "permissions": oct(stat.st_mode & 0o777),
    })


def create_directory(args: Dict[str, Any]) -> ToolResult:
    path = Path(args["path"])
    try:
        path.mkdir(parents=args.get("parents", True), exist_ok=True)
    except OSError as e:
        return ToolResult.error(f"Failed to create directory: {path} ({e.strerror or e})")
    return ToolResult.text(f"Directory created: {path}")


def delete_path(args: Dict[str, Any]) -> ToolResult:
    path = Path(args["path"])
    if not path.exists():
        return ToolResult.error(f"Path does not exist: {path}")
    try:
        if path.is_dir() and not path.is_symlink():
            if args.get("recursive", False):
                shutil.rmtree(path)
            else:
                path.rmdir()
        else:
            path.unlink()
    except OSError as e:
        return ToolResult.error(f"Failed to delete {path}: {e.strerror or e}")
    return ToolResult.text(f"Deleted: {path}")


def register_filesystem_tools(server: ToolServer) -> None:
    path = ToolParameter(name="path", type="string", description="File or directory path")

    server.register_tool("read_file", "Read the contents of a text file", [path], read_file)
    server.register_tool(
        "write_file",
        "Write content to a file, creating parent directories as needed",
        [path, ToolParameter(name="content", type="string", description="Content to write to the file")],
        write_file,
    )
    server.register_tool("list_directory", "List the entries of a directory", [path], list_directory)
    server.register_tool(
        "search_files",
        "Find files whose names match a regular expression",
        [
            path,
            ToolParameter(name="pattern", type="string", description="Regex pattern to match filenames"),
            ToolParameter(name="recursive", type="boolean", description="Search recursively",
                          required=False, default=True),
        ],
        search_files,
    )
    server.register_tool("file_info", "Get size, type and timestamps for a path", [path], file_info)
    server.register_tool(
        "create_directory",
        "Create a directory",
        [path, ToolParameter(name="parents", type="boolean", description="Create parent directories if needed",
                             required=False, default=True)],
        create_directory,
    )
    server.register_tool(
        "delete_path",
        "Delete a file or directory",
        [path, ToolParameter(name="recursive", type="boolean", description="Delete directories recursively",
                             required=False, default=False)],
        delete_path,
    )

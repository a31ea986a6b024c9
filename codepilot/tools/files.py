"""
File system tools.

What it does:
- Reads, writes, creates, appends and deletes files inside the workspace
- Lists, searches and inspects project files

Main purpose:
Give the planner real file access without leaving the project root.
"""

import asyncio
import fnmatch
import re
import shutil

from pydantic import Field

from codepilot.core.errors import ToolExecutionError
from codepilot.llm.schemas import ToolResult
from codepilot.tools.registry import ToolParams, register
from codepilot.tools.workspace import Workspace


class PathParams(ToolParams):
    path: str = Field(..., description="File path relative to the project root")


class PathContentParams(ToolParams):
    path: str = Field(..., description="File path relative to the project root")
    content: str = Field(..., description="Text content")


class DirParams(ToolParams):
    path: str = Field(".", description="Directory path (default: project root)")


class QueryParams(ToolParams):
    query: str = Field(..., min_length=1, description="Text to search for (case-insensitive)")


class PatternParams(ToolParams):
    pattern: str = Field(..., min_length=1, description='File name pattern (e.g. "*.tsx", "test.*")')


class CountParams(ToolParams):
    path: str = Field("all", description='File path, or "all" for the entire project')


def _read(ws: Workspace, path: str) -> str:
    p = ws.resolve(path)
    if not p.is_file():
        raise ToolExecutionError(f"File not found: {path}")
    return p.read_text(encoding="utf-8", errors="replace")


@register("read_file", "Read the contents of a file", PathParams)
async def read_file(ws: Workspace, params: PathParams) -> ToolResult:
    content = await asyncio.to_thread(_read, ws, params.path)
    return ToolResult(success=True, output=content)


@register("write_file", "Write content to a file (creates or overwrites)", PathContentParams)
async def write_file(ws: Workspace, params: PathContentParams) -> ToolResult:
    p = ws.resolve(params.path)

    def _write() -> None:
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(params.content, encoding="utf-8")

    await asyncio.to_thread(_write)
    return ToolResult(success=True, output=f"File written: {ws.display(p)}", data={"bytes": len(params.content.encode("utf-8"))})


@register("create_file", "Create a new empty file", PathParams)
async def create_file(ws: Workspace, params: PathParams) -> ToolResult:
    p = ws.resolve(params.path)
    if p.exists():
        raise ToolExecutionError(f"Already exists: {params.path}")

    def _touch() -> None:
        p.parent.mkdir(parents=True, exist_ok=True)
        p.touch()

    await asyncio.to_thread(_touch)
    return ToolResult(success=True, output=f"File created: {ws.display(p)}")


@register("delete_file", "Delete a file or folder", PathParams)
async def delete_file(ws: Workspace, params: PathParams) -> ToolResult:
    p = ws.resolve(params.path)
    if p == ws.root:
        raise ToolExecutionError("Refusing to delete the project root")
    if not p.exists():
        raise ToolExecutionError(f"Not found: {params.path}")

    if p.is_dir():
        await asyncio.to_thread(shutil.rmtree, p)
    else:
        await asyncio.to_thread(p.unlink)
    return ToolResult(success=True, output=f"Deleted: {ws.display(p)}")


@register("append_file", "Append content to a file", PathContentParams)
async def append_file(ws: Workspace, params: PathContentParams) -> ToolResult:
    existing = await asyncio.to_thread(_read, ws, params.path)
    p = ws.resolve(params.path)
    await asyncio.to_thread(p.write_text, existing + "\n" + params.content, encoding="utf-8")
    return ToolResult(success=True, output=f"Appended to: {ws.display(p)}")


@register("list_directory", "List files and folders in a directory", DirParams)
async def list_directory(ws: Workspace, params: DirParams) -> ToolResult:
    p = ws.resolve(params.path)
    if not p.is_dir():
        raise ToolExecutionError(f"Not a directory: {params.path}")

    entries = await asyncio.to_thread(lambda: sorted(p.iterdir(), key=lambda c: c.name.lower()))
    files = [{"name": c.name, "type": "folder" if c.is_dir() else "file"} for c in entries]
    listing = "\n".join(f"{'[DIR]' if f['type'] == 'folder' else '[FILE]'} {f['name']}" for f in files)
    return ToolResult(success=True, output=listing or "Empty directory", data=files)


@register("search_files", "Search for text across all files", QueryParams)
async def search_files(ws: Workspace, params: QueryParams) -> ToolResult:
    needle = params.query.lower()

    def _search() -> list:
        results = []
        for f in ws.iter_files():
            try:
                text = f.read_text(encoding="utf-8")
            except (UnicodeDecodeError, OSError):
                continue  # binary or unreadable
            for i, line in enumerate(text.splitlines(), start=1):
                if needle in line.lower():
                    results.append(f"{ws.display(f)}:{i}: {line.strip()}")
        return results

    results = await asyncio.to_thread(_search)
    return ToolResult(
        success=True,
        output="\n".join(results) if results else "No matches found",
        data={"matchCount": len(results), "results": results},
    )


@register("find_files", "Find files by name pattern", PatternParams)
async def find_files(ws: Workspace, params: PatternParams) -> ToolResult:
    matches = await asyncio.to_thread(
        lambda: [ws.display(f) for f in ws.iter_files() if fnmatch.fnmatch(f.name, params.pattern)]
    )
    return ToolResult(
        success=True,
        output="\n".join(matches) if matches else "No matches found",
        data={"count": len(matches), "files": matches},
    )


@register("file_info", "Get file information (size, line count, type)", PathParams)
async def file_info(ws: Workspace, params: PathParams) -> ToolResult:
    content = await asyncio.to_thread(_read, ws, params.path)
    p = ws.resolve(params.path)
    info = {
        "path": ws.display(p),
        "type": p.suffix.lstrip(".").lower() or "unknown",
        "lines": len(content.split("\n")),
        "words": len(content.split()),
        "chars": len(content),
        "size": p.stat().st_size,
    }
    output = (
        f"File: {info['path']}\nType: {info['type']}\nLines: {info['lines']}\n"
        f"Words: {info['words']}\nCharacters: {info['chars']}\nSize: {info['size']} bytes"
    )
    return ToolResult(success=True, output=output, data=info)


@register("count_lines", "Count total lines in a file or project", CountParams)
async def count_lines(ws: Workspace, params: CountParams) -> ToolResult:
    if params.path != "all":
        content = await asyncio.to_thread(_read, ws, params.path)
        lines = len(content.split("\n"))
        return ToolResult(
            success=True,
            output=f"File: {params.path}\nLines: {lines}",
            data={"path": params.path, "lines": lines},
        )

    def _count():
        total, count = 0, 0
        for f in ws.iter_files():
            try:
                total += len(f.read_text(encoding="utf-8").split("\n"))
            except (UnicodeDecodeError, OSError):
                continue
            count += 1
        return count, total

    file_count, total_lines = await asyncio.to_thread(_count)
    return ToolResult(
        success=True,
        output=f"Project: {file_count} files, {total_lines} total lines",
        data={"fileCount": file_count, "totalLines": total_lines},
    )


_IMPORT_RE = re.compile(r"^(?:import\s.*|from\s+\S+\s+import\s.*)$", re.MULTILINE)


@register("list_imports", "Extract import statements from a file", PathParams)
async def list_imports(ws: Workspace, params: PathParams) -> ToolResult:
    content = await asyncio.to_thread(_read, ws, params.path)
    imports = _IMPORT_RE.findall(content)
    return ToolResult(
        success=True,
        output="\n".join(imports) if imports else "No imports found",
        data={"imports": imports, "count": len(imports)},
    )

"""
Package manifest tools.

What it does:
- Looks up packages on the npm registry
- Adds dependencies to package.json
- Lays out a new project folder

Main purpose:
Let the agent manage a JavaScript project's manifest without running npm.
"""

import asyncio
import json
from typing import Literal, Optional

import httpx
from pydantic import Field

from codepilot.core.config import settings
from codepilot.core.errors import ToolExecutionError
from codepilot.llm.schemas import ToolResult
from codepilot.tools.registry import ToolParams, register
from codepilot.tools.workspace import Workspace

PROJECT_FOLDERS = ["components", "utils", "constants", "hooks", "services", "types"]


class NpmInfoParams(ToolParams):
    package: str = Field(..., min_length=1, description="Package name")


class UpdatePackageParams(ToolParams):
    package: str = Field(..., min_length=1, description="Package name")
    version: Optional[str] = Field(None, description="Version (default: latest)")
    type: Literal["dependencies", "devDependencies"] = Field("dependencies", description='"dependencies" or "devDependencies"')
    path: str = Field("package.json", description="Path to package.json")


class InitProjectParams(ToolParams):
    name: str = Field(..., min_length=1, description="Project name (also the folder name)")


@register("npm_info", "Get package information from the npm registry", NpmInfoParams)
async def npm_info(ws: Workspace, params: NpmInfoParams) -> ToolResult:
    url = f"{settings.NPM_REGISTRY_URL.rstrip('/')}/{params.package}"
    async with ws.http_client() as client:
        try:
            r = await client.get(url)
        except httpx.HTTPError as e:
            raise ToolExecutionError(f"npm registry unreachable: {e}") from e

    if r.status_code == 404:
        raise ToolExecutionError(f'Package "{params.package}" not found')
    if r.status_code >= 400:
        raise ToolExecutionError(f"npm registry error {r.status_code}")

    data = r.json()
    latest_version = (data.get("dist-tags") or {}).get("latest", "unknown")
    latest = (data.get("versions") or {}).get(latest_version, {})
    info = {
        "name": data.get("name", params.package),
        "version": latest_version,
        "description": latest.get("description") or data.get("description") or "No description",
        "license": latest.get("license") or data.get("license") or "unknown",
        "homepage": latest.get("homepage") or data.get("homepage") or "",
    }
    output = f"{info['name']}\nVersion: {info['version']}\n{info['description']}\nLicense: {info['license']}"
    return ToolResult(success=True, output=output, data=info)


@register("update_package_json", "Add a dependency to package.json", UpdatePackageParams)
async def update_package_json(ws: Workspace, params: UpdatePackageParams) -> ToolResult:
    p = ws.resolve(params.path)

    def _update() -> None:
        try:
            manifest = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ToolExecutionError(f"package.json not found or invalid: {params.path}") from e
        if not isinstance(manifest, dict):
            raise ToolExecutionError(f"package.json is not an object: {params.path}")
        deps = manifest.setdefault(params.type, {})
        deps[params.package] = params.version or "latest"
        p.write_text(json.dumps(manifest, indent=2) + "\n", encoding="utf-8")

    await asyncio.to_thread(_update)
    return ToolResult(
        success=True,
        output=f"Added {params.package} to {params.type} in {ws.display(p)}",
        data={"package": params.package, "type": params.type, "version": params.version or "latest"},
    )


@register("init_project", "Initialize a project folder structure", InitProjectParams)
async def init_project(ws: Workspace, params: InitProjectParams) -> ToolResult:
    base = ws.resolve(params.name)

    def _init() -> list:
        created = []
        for folder in PROJECT_FOLDERS:
            d = base / folder
            if not d.exists():
                d.mkdir(parents=True)
                created.append(folder)
        manifest = base / "package.json"
        if not manifest.exists():
            manifest.write_text(
                json.dumps({"name": base.name, "version": "0.1.0", "private": True, "dependencies": {}}, indent=2) + "\n",
                encoding="utf-8",
            )
        return created

    created = await asyncio.to_thread(_init)
    listing = "\n".join(f"{ws.display(base)}/{f}/" for f in created) or "(already initialized)"
    return ToolResult(
        success=True,
        output=f"Initialized project structure:\n{listing}",
        data={"root": ws.display(base), "folders": created},
    )

from __future__ import annotations

"""Serve the OpenAPI document as YAML for SDK generators and docs hosting."""

from datetime import datetime, timezone

import yaml
from fastapi import FastAPI, Request, Response

__all__ = ["install_openapi_route"]


def install_openapi_route(app: FastAPI, path: str = "/openapi.yaml") -> None:
    """Attach a YAML exporter of *app*'s schema at *path* (hidden from the schema itself)."""

    @app.get(path, include_in_schema=False)
    async def _openapi_yaml(_: Request) -> Response:
        body = f"# generated: {datetime.now(timezone.utc).date().isoformat()}\n"
        body += yaml.safe_dump(app.openapi(), sort_keys=False)
        return Response(
            content=body,
            media_type="application/x-yaml",
            headers={"Cache-Control": "public, max-age=300"},
        )

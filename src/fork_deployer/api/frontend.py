"""Static front-end fallback."""

from pathlib import Path

import structlog
from fastapi import FastAPI, HTTPException
from fastapi.responses import FileResponse

logger = structlog.get_logger()


def setup_frontend_routes(app: FastAPI, static_dir: str) -> None:
    """Serve ``index.html`` for every GET not matched by an API route.

    Must be called after all other routers are included.
    """
    index_file = Path(static_dir) / "index.html"
    logger.info("Setting up front-end fallback", index_file=str(index_file), exists=index_file.exists())

    @app.get("/{path:path}", include_in_schema=False)
    async def serve_frontend(path: str):
        asset = (Path(static_dir) / path).resolve()
        root = Path(static_dir).resolve()
        if path and asset.is_file() and root in asset.parents:
            return FileResponse(asset)
        if not index_file.exists():
            raise HTTPException(status_code=404, detail="Not found")
        return FileResponse(index_file)

"""Serve command - run an HTTP surface under uvicorn."""

from __future__ import annotations

import uvicorn
from rich.console import Console

from ..config import Settings


def run_serve(settings: Settings, app_name: str, host: str, port: int) -> int:
    console = Console(stderr=True)

    if app_name == "edge":
        from ..api.edge import create_app

        app = create_app(settings=settings)
    else:
        from ..api.pipeline import create_app

        app = create_app(settings=settings)

    console.print(f"[bold]Serving[/bold] {app_name} on http://{host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level=settings.log_level.lower())
    return 0

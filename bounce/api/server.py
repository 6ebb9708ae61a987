"""BOUNCE FastAPI server — main application."""

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from bounce.api.routes.export import router as export_router
from bounce.api.websocket import websocket_endpoint

app = FastAPI(
    title="BOUNCE",
    description="Offline render and export pipeline for patterns, channels and arrangements.",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(export_router, prefix="/api")


# WebSocket endpoint
@app.websocket("/ws/{project_id}")
async def ws_endpoint(websocket: WebSocket, project_id: str) -> None:
    """WebSocket for export progress updates."""
    await websocket_endpoint(websocket, project_id)


# ── Public routes ──
@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok", "service": "bounce"}


@app.get("/api/info")
async def info() -> dict[str, object]:
    """System information and capabilities."""
    from bounce import __version__

    return {
        "name": "BOUNCE",
        "version": __version__,
        "layers": {
            "grid": "Patterns, notes & arrangement timeline",
            "hands": "Offline rendering, synthesis & audio processing",
            "console": "Snapshots, export dispatch & freeze",
        },
        "endpoints": {
            "docs": "/docs",
            "health": "/health",
            "export_presets": "GET /api/export/presets",
            "export_status": "GET /api/export/status",
            "export_load_project": "PUT /api/export/project",
            "export_pattern": "POST /api/export/pattern/{pattern_id}",
            "export_freeze": "POST /api/export/freeze/{pattern_id}",
            "export_mixdown": "POST /api/export/mixdown/{pattern_id}",
            "export_stems": "POST /api/export/stems/{pattern_id}",
            "export_channels": "POST /api/export/channels",
            "export_arrangement": "POST /api/export/arrangement",
            "batch_export": "POST /api/export/batch/export",
            "batch_freeze": "POST /api/export/batch/freeze",
            "websocket": "WS /ws/{project_id}",
        },
    }

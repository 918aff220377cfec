"""FastAPI application exposing the simulated chat widget."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field

from .config import load_config
from .controller import ConversationController, build_controller
from .scheduler import Timers
from .storage import THEME_KEY, KeyValueStorage
from .view import EventFeed, ThemeState, WidgetState


# -----------------------------
# Pydantic request/response
# -----------------------------
class SendRequest(BaseModel):
    # Blank text is accepted here and ignored by the controller.
    text: str = Field(default="", max_length=8000)


class SendResponse(BaseModel):
    accepted: bool
    message: Optional[Dict[str, Any]] = None


class EventsResponse(BaseModel):
    events: List[Dict[str, Any]]
    last_seq: int
    typing: bool


class ThemeResponse(BaseModel):
    theme: str
    toggle_label: str


class WidgetResponse(BaseModel):
    open: bool


# -----------------------------
# App factory
# -----------------------------
def create_app(
    config_path: Optional[str] = None,
    storage: Optional[KeyValueStorage] = None,
    timers: Optional[Timers] = None,
) -> FastAPI:
    cfg = load_config(config_path)

    # CORS
    cors_origins = cfg.get("server", {}).get("cors_origins", ["*"])

    # Services
    feed = EventFeed(max_events=int(cfg.get("events", {}).get("max_events", 500)))
    controller: ConversationController = build_controller(cfg, storage=storage, timers=timers, observer=feed)
    store = controller.store
    theme = ThemeState(store.storage, key=cfg.get("storage", {}).get("theme_key", THEME_KEY))
    widget = WidgetState()

    app = FastAPI(title="Chat Widget", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.controller = controller
    app.state.events = feed

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {
            "ok": True,
            "typing": controller.scheduler.typing,
            "messages": len(store),
        }

    @app.get("/config")
    def get_config() -> JSONResponse:
        return JSONResponse(dict(cfg))

    @app.get("/messages")
    def list_messages() -> List[Dict[str, Any]]:
        return [m.to_dict() for m in controller.load_or_seed_conversation()]

    # async so the scheduler's timers land on the server's event loop
    @app.post("/messages", response_model=SendResponse)
    async def send_message(req: SendRequest) -> SendResponse:
        message = controller.send_user_message(req.text)
        if message is None:
            return SendResponse(accepted=False)
        return SendResponse(accepted=True, message=message.to_dict())

    @app.get("/events", response_model=EventsResponse)
    def events(since: int = Query(default=0, ge=0)) -> EventsResponse:
        return EventsResponse(events=feed.since(since), last_seq=feed.last_seq, typing=feed.typing)

    @app.get("/transcript", response_class=PlainTextResponse)
    def transcript() -> str:
        return store.export_text()

    @app.get("/theme", response_model=ThemeResponse)
    def get_theme() -> ThemeResponse:
        return ThemeResponse(theme=theme.theme, toggle_label=theme.toggle_label)

    @app.post("/theme/toggle", response_model=ThemeResponse)
    def toggle_theme() -> ThemeResponse:
        theme.toggle()
        return ThemeResponse(theme=theme.theme, toggle_label=theme.toggle_label)

    @app.get("/widget", response_model=WidgetResponse)
    def get_widget() -> WidgetResponse:
        return WidgetResponse(open=widget.is_open)

    @app.post("/widget/toggle", response_model=WidgetResponse)
    def toggle_widget() -> WidgetResponse:
        return WidgetResponse(open=widget.toggle())

    return app

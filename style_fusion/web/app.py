from __future__ import annotations

import mimetypes
import uuid
from pathlib import Path

from fastapi import BackgroundTasks, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates

from ..encoding import UploadedImage
from ..errors import ValidationError
from ..logging_utils import RunLogger
from ..pipeline.state import RunPhase
from ..pipeline_factory import PipelineContainer
from ..prompting import AspectRatio
from .sessions import SessionStore, WebSession

BASE_DIR = Path(__file__).resolve().parent
templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))

ROLES = ("reference", "subject")
DOWNLOAD_STEM = "ai-fused-image"


def download_filename(index: int, mime_type: str) -> str:
    extension = mimetypes.guess_extension(mime_type or "") or ".png"
    return f"{DOWNLOAD_STEM}-{index}{extension}"


def create_app(container: PipelineContainer) -> FastAPI:
    config = container.config
    app = FastAPI(title="Style Fusion", description="Blend a subject into the style of a reference image.")
    sessions = SessionStore(container.new_orchestrator)
    app.state.container = container
    app.state.sessions = sessions
    log = RunLogger.for_area("web")
    cookie_name = config.server.session_cookie

    def _session(request: Request) -> WebSession:
        return sessions.get_or_create(request.cookies.get(cookie_name))

    def _finish(response: Response, session: WebSession) -> Response:
        response.set_cookie(cookie_name, session.session_id, httponly=True, samesite="lax")
        return response

    def _back(session: WebSession) -> Response:
        return _finish(RedirectResponse(url="/", status_code=303), session)

    @app.get("/", response_class=HTMLResponse)
    def index(request: Request):
        session = _session(request)
        orchestrator = session.orchestrator
        state = orchestrator.state
        response = templates.TemplateResponse(
            request=request,
            name="index.html",
            context={
                "state": state,
                "phases": RunPhase,
                "reference": orchestrator.reference,
                "subject": orchestrator.subject,
                "aspect_ratios": AspectRatio.choices(),
                "selected_ratio": orchestrator.aspect_ratio,
                "can_start": orchestrator.can_start,
                "notice": session.pop_notice(),
                "refresh_seconds": config.server.refresh_seconds if state.is_running else None,
                "variants": orchestrator.variants,
            },
        )
        return _finish(response, session)

    @app.post("/uploads/{role}")
    async def upload(request: Request, role: str, file: UploadFile = File(...)):
        if role not in ROLES:
            raise HTTPException(status_code=404, detail=f"Unknown upload slot {role!r}")
        session = _session(request)
        content = await file.read()
        if len(content) > config.server.max_upload_bytes:
            session.notice = "The selected file is too large."
            return _back(session)
        try:
            uploaded = UploadedImage.create(
                filename=file.filename or f"{role}-image",
                content=content,
                mime_type=file.content_type,
                display_url=f"/uploads/{role}?v={uuid.uuid4().hex[:8]}",
            )
        except ValidationError as exc:
            session.notice = exc.message
            return _back(session)
        if role == "reference":
            session.orchestrator.upload_reference(uploaded)
        else:
            session.orchestrator.upload_subject(uploaded)
        return _back(session)

    @app.get("/uploads/{role}")
    def uploaded_preview(request: Request, role: str):
        session = _session(request)
        uploaded = getattr(session.orchestrator, role, None) if role in ROLES else None
        if uploaded is None:
            raise HTTPException(status_code=404, detail="No image uploaded")
        return _finish(Response(content=uploaded.content, media_type=uploaded.mime_type), session)

    @app.post("/runs")
    def start_run(request: Request, background_tasks: BackgroundTasks, aspect_ratio: str = Form(...)):
        session = _session(request)
        orchestrator = session.orchestrator
        try:
            orchestrator.set_aspect_ratio(aspect_ratio)
            ticket = orchestrator.begin_run()
        except ValidationError as exc:
            log.log("WEB", f"session={session.session_id[:8]} rejected run: {exc.message}", level="WARN")
            session.notice = exc.message
            return _back(session)
        background_tasks.add_task(orchestrator.execute, ticket)
        return _back(session)

    @app.post("/reset")
    def reset(request: Request):
        session = _session(request)
        session.orchestrator.reset()
        return _back(session)

    @app.get("/api/state")
    def api_state(request: Request):
        session = _session(request)
        orchestrator = session.orchestrator
        payload = dict(orchestrator.state.as_dict())
        payload.update(
            {
                "can_start": orchestrator.can_start,
                "aspect_ratio": orchestrator.aspect_ratio.value,
                "reference": orchestrator.reference.filename if orchestrator.reference else None,
                "subject": orchestrator.subject.filename if orchestrator.subject else None,
            }
        )
        return _finish(JSONResponse(payload), session)

    def _result(session: WebSession, index: int):
        state = session.orchestrator.state
        if state.phase is not RunPhase.SUCCEEDED or not 1 <= index <= len(state.images):
            raise HTTPException(status_code=404, detail="No such generated image")
        return state.images[index - 1]

    @app.get("/results/{index}")
    def result_image(request: Request, index: int):
        session = _session(request)
        image = _result(session, index)
        return _finish(Response(content=image.raw_bytes(), media_type=image.mime_type), session)

    @app.get("/results/{index}/download")
    def download_result(request: Request, index: int):
        session = _session(request)
        image = _result(session, index)
        headers = {"Content-Disposition": f'attachment; filename="{download_filename(index, image.mime_type)}"'}
        return _finish(Response(content=image.raw_bytes(), media_type=image.mime_type, headers=headers), session)

    return app


__all__ = ["create_app", "download_filename"]

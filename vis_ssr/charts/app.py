import traceback
from typing import Any
from fastapi import FastAPI, Body, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from vis_ssr.config import Settings
from vis_ssr.storage.images import ensure_dir, save_artifact
from .chart_schema import RenderResult
from .render_matplotlib import render_png
from .html_page import build_chart_page

MISSING_OPTIONS = "Missing required parameters: type or data"


def _respond(result: RenderResult, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=result.body())

def _missing(options: Any) -> bool:
    # non-JSON content types reach the handler as raw bytes
    return options is None or isinstance(options, (bytes, bytearray))

def _result_url(request: Request, settings: Settings, filename: str) -> str:
    base = settings.public_base_url
    if not base:
        host = request.headers.get("host") or request.url.netloc
        base = f"{request.url.scheme}://{host}"
    return f"{base}{settings.images_route.rstrip('/')}/{filename}"


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    images_dir = ensure_dir(settings.images_dir)

    app = FastAPI(title="GPT-Vis SSR API")
    app.state.settings = settings

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError):
        reason = "; ".join(str(e.get("msg")) for e in exc.errors()) or "malformed body"
        print(f"❌ Rejected body on {request.url.path}: {reason}")
        return _respond(RenderResult.fail(f"Invalid request body: {reason}"), status.HTTP_400_BAD_REQUEST)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.post("/render")
    def render(request: Request, options: Any = Body(None)):
        """Render chart options to a PNG and return its public URL."""
        if _missing(options):
            return _respond(RenderResult.fail(MISSING_OPTIONS), status.HTTP_400_BAD_REQUEST)
        try:
            png = render_png(options)
            filename = save_artifact(images_dir, "png", png)
            print(f"✅ Saved chart image {filename}")
            return _respond(RenderResult.ok(_result_url(request, settings, filename)))
        except Exception as e:
            traceback.print_exc()
            print(f"❌ Chart rendering failed: {e}")
            return _respond(RenderResult.fail(f"Failed to render chart: {e}"),
                            status.HTTP_500_INTERNAL_SERVER_ERROR)

    @app.post("/render-html")
    def render_html(request: Request, options: Any = Body(None)):
        """Write an interactive gpt-vis page for the chart options and return its public URL."""
        if _missing(options):
            return _respond(RenderResult.fail(MISSING_OPTIONS), status.HTTP_400_BAD_REQUEST)
        try:
            page = build_chart_page(options, runtime_src=settings.runtime_script)
            filename = save_artifact(images_dir, "html", page)
            print(f"✅ Saved chart page {filename}")
            return _respond(RenderResult.ok(_result_url(request, settings, filename)))
        except Exception as e:
            traceback.print_exc()
            print(f"❌ HTML chart rendering failed: {e}")
            return _respond(RenderResult.fail(f"Failed to render HTML chart: {e}"),
                            status.HTTP_500_INTERNAL_SERVER_ERROR)

    app.mount(settings.images_route, StaticFiles(directory=images_dir), name="images")
    return app


app = create_app()

import logging

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.responses import HTMLResponse, PlainTextResponse, Response
from starlette.concurrency import run_in_threadpool

from meme_api.config import Settings, settings as default_settings
from meme_api.converter import CaptionConverter, ImageConverter, PngConverter
from meme_api.errors import ConversionError, ConversionFailure, InvalidRequest, register_error_handlers
from meme_api.observability import MetricsRegistry, RequestMetricsAndLoggingMiddleware, configure_logging
from meme_api.schemas import ErrorResponse, HealthResponse

logger = logging.getLogger("meme.upload")

UPLOAD_PATH = "/api/upload"

INDEX_HTML = f"""<!doctype html>
<html>
  <head><title>Meme upload</title></head>
  <body>
    <h2>Upload an image</h2>
    <form action="{UPLOAD_PATH}" enctype="multipart/form-data" method="post">
      <div>
        <p>Text field title: <input type="text" name="title" /></p>
        <p>File: <input type="file" name="file" /></p>
      </div>
      <input type="submit" value="Upload" />
    </form>
  </body>
</html>
"""


def create_app(
    app_settings: Settings | None = None,
    converter: ImageConverter | None = None,
) -> FastAPI:
    app_settings = app_settings or default_settings
    configure_logging(app_settings)
    base_converter = converter or PngConverter(compression=app_settings.png_compression)
    metrics = MetricsRegistry()

    app = FastAPI(title="Meme Upload API", version="0.1.0")
    app.state.settings = app_settings
    app.state.metrics = metrics
    app.add_middleware(
        RequestMetricsAndLoggingMiddleware,
        registry=metrics,
        enable_metrics=app_settings.enable_metrics,
    )
    register_error_handlers(app)

    @app.get("/", response_class=HTMLResponse, include_in_schema=False)
    def index_page() -> HTMLResponse:
        return HTMLResponse(INDEX_HTML)

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="ok", service="meme-api")

    @app.get("/metrics", include_in_schema=False)
    def metrics_page() -> PlainTextResponse:
        return PlainTextResponse(metrics.render_prometheus(), media_type="text/plain; version=0.0.4")

    @app.post(
        UPLOAD_PATH,
        response_class=Response,
        responses={
            200: {"content": {"image/png": {}}},
            400: {"model": ErrorResponse},
            500: {"model": ErrorResponse},
        },
    )
    async def upload(
        request: Request,
        file: UploadFile | None = File(None),
        title: str | None = Form(None),
    ) -> Response:
        if file is None:
            raise InvalidRequest("multipart field 'file' is required")
        content = await file.read()
        if not content:
            raise InvalidRequest("multipart field 'file' is empty")

        active = base_converter
        if app_settings.caption_from_title and title and title.strip():
            active = CaptionConverter(base_converter, title.strip(), compression=app_settings.png_compression)

        extra = {"request_id": request.state.request_id, "input_bytes": len(content)}
        try:
            image = await run_in_threadpool(active.convert, content)
        except ConversionError as exc:
            if app_settings.enable_metrics:
                metrics.record_conversion_failure()
            logger.warning("conversion_failed", extra={**extra, "error": str(exc)})
            raise ConversionFailure(str(exc)) from exc
        except Exception as exc:  # noqa: BLE001
            if app_settings.enable_metrics:
                metrics.record_conversion_failure()
            logger.exception("conversion_crashed", extra=extra)
            raise ConversionFailure(f"converter error: {exc}") from exc

        if app_settings.enable_metrics:
            metrics.record_conversion(len(image))
        logger.info("conversion_complete", extra={**extra, "output_bytes": len(image)})
        return Response(
            content=image,
            media_type="image/png",
            headers={"Content-Disposition": f'attachment; filename="{app_settings.output_filename}"'},
        )

    return app


app = create_app()

import asyncio
import os
from typing import Optional

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel

from focalcrop.crop_math import Dimensions, GeometryError, resolve_geometry
from focalcrop.log import get_logger
from focalcrop.pipeline import EditConfig, load_config, process_bytes, request_from_params

logger = get_logger()

app = FastAPI(title="focalcrop")

_config: EditConfig | None = None
_semaphore: asyncio.Semaphore | None = None

_MEDIA_TYPES = {"PNG": "image/png", "JPEG": "image/jpeg", "WEBP": "image/webp"}


class SourceSize(BaseModel):
    width: int
    height: int


class GeometryRequest(BaseModel):
    source: SourceSize
    width: Optional[int] = None
    height: Optional[int] = None
    fit: Optional[str] = None
    aspect_ratio: Optional[str] = None
    focal_x: Optional[float] = None
    focal_y: Optional[float] = None


class CropBox(BaseModel):
    left: int
    top: int
    width: int
    height: int


class GeometryResponse(BaseModel):
    width: Optional[int]
    height: Optional[int]
    fit: Optional[str]
    crop: Optional[CropBox]


@app.on_event("startup")
def startup() -> None:
    global _config, _semaphore
    _config = load_config()
    max_concurrent = int(os.getenv("MAX_CONCURRENT", "20"))
    if max_concurrent < 1:
        max_concurrent = 1
    _semaphore = asyncio.Semaphore(max_concurrent)
    logger.info("Service ready (max_concurrent=%d, fit=%s)", max_concurrent, _config.default_fit.value)


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/geometry", response_model=GeometryResponse)
def geometry(body: GeometryRequest) -> GeometryResponse:
    try:
        request = request_from_params(
            width=body.width,
            height=body.height,
            fit=body.fit,
            aspect_ratio=body.aspect_ratio,
            focal_x=body.focal_x,
            focal_y=body.focal_y,
        )
        resolved = resolve_geometry(Dimensions(body.source.width, body.source.height), request)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    fit = resolved.fit or request.fit
    crop = None
    if resolved.crop is not None:
        crop = CropBox(
            left=resolved.crop.left,
            top=resolved.crop.top,
            width=resolved.crop.width,
            height=resolved.crop.height,
        )
    return GeometryResponse(
        width=resolved.width,
        height=resolved.height,
        fit=fit.value if fit is not None else None,
        crop=crop,
    )


@app.post("/edit")
async def edit_image(
    file: UploadFile = File(...),
    width: Optional[int] = Form(None),
    height: Optional[int] = Form(None),
    fit: Optional[str] = Form(None),
    aspect_ratio: Optional[str] = Form(None),
    focal_x: Optional[float] = Form(None),
    focal_y: Optional[float] = Form(None),
) -> Response:
    if _config is None or _semaphore is None:
        raise HTTPException(status_code=500, detail="Service not initialized")
    try:
        request = request_from_params(width, height, fit, aspect_ratio, focal_x, focal_y)
        async with _semaphore:
            content = await file.read()
            result = process_bytes(content, request, _config)
    except GeometryError as exc:
        logger.info("Rejected edit of %s: %s", file.filename, exc)
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Edit of %s failed", file.filename)
        raise HTTPException(status_code=500, detail="Processing failed") from exc
    media_type = _MEDIA_TYPES.get(_config.output_format, "application/octet-stream")
    return Response(content=result, media_type=media_type)

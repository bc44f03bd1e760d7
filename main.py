import base64
import binascii
import logging
import os
import time
import uuid
from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from certcheck import AnalyzerError, ErrorCode, ExtractionError, ReportAssembler, Settings
from certcheck.extract import PDF_MEDIA_TYPE

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("certcheck.api")

# ----------------------------------------------------------------------------
# App & CORS
# ----------------------------------------------------------------------------
app = FastAPI(title="Status Certificate Analyzer")

FRONTEND_ORIGIN = os.getenv("FRONTEND_ORIGIN")
if FRONTEND_ORIGIN:
    allow_origins = [FRONTEND_ORIGIN]
else:
    # permissive for development; tighten in prod
    allow_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ----------------------------------------------------------------------------
# Dependencies
# ----------------------------------------------------------------------------

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


@lru_cache(maxsize=1)
def get_assembler() -> ReportAssembler:
    return ReportAssembler(get_settings())


@app.on_event("shutdown")
def close_assembler() -> None:
    if get_assembler.cache_info().currsize:
        get_assembler().close()

# ----------------------------------------------------------------------------
# Payloads
# ----------------------------------------------------------------------------

class AnalyzePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file: Optional[str] = None
    file_name: Optional[str] = Field(None, alias="fileName")
    media_type: str = Field(PDF_MEDIA_TYPE, alias="mediaType")
    # Passed through untouched.
    corporation: Optional[str] = None


def _fail(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def new_report_id() -> str:
    return f"report-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"

# ----------------------------------------------------------------------------
# Routes
# ----------------------------------------------------------------------------

@app.get("/")
async def root(settings: Settings = Depends(get_settings)):
    return {"status": "ok", "model": settings.model}


@app.post("/analyze")
async def analyze(payload: AnalyzePayload, assembler: ReportAssembler = Depends(get_assembler)):
    if not payload.file:
        return _fail(400, "No file provided")

    try:
        data = base64.b64decode(payload.file, validate=True)
    except (binascii.Error, ValueError):
        return _fail(400, "File is not valid base64")
    if not data:
        return _fail(400, "No file provided")

    try:
        result = await assembler.analyze(data, payload.media_type)
    except ExtractionError as e:
        logger.warning("Could not read %s: %s", payload.file_name or "upload", e)
        return _fail(
            400,
            "Could not read the document. The file may be corrupted, encrypted, or unreadable.",
        )
    except AnalyzerError as e:
        status = 429 if e.code == ErrorCode.RATE_LIMIT else 500
        return _fail(status, e.message)
    except Exception:
        logger.exception("Unexpected analysis failure")
        return _fail(500, "Analysis failed. Please try again.")

    return {
        "success": True,
        "reportId": new_report_id(),
        "analysis": result.model_dump(mode="json"),
        "fileName": payload.file_name,
        "corporation": payload.corporation,
        "pageCount": result.page_count,
        "extractedTextLength": result.text_length,
        "usedOCR": result.used_ocr,
    }


# Local dev entrypoint
if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", "8080"))
    uvicorn.run(app, host="0.0.0.0", port=port)

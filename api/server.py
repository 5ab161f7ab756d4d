"""FastAPI server for the try-on studio.

Exposes one local wizard session to a browser front end:
- upload / select person and clothing photos
- generate clothing from a text prompt
- run the try-on and replay results from the session history

Images are exchanged as base64 data URLs.
"""

import base64
import binascii
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from vton_studio import __version__
from vton_studio.config import load_config
from vton_studio.errors import MissingCredentialError
from vton_studio.models import HistoryRecord, ImageAsset, WizardState, WizardStep
from vton_studio.pipeline import WizardController
from vton_studio.utils import strip_data_prefix


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if _controller is not None:
        await _controller.close()


app = FastAPI(
    lifespan=lifespan,
    title="VTON Studio API",
    description="Virtual try-on wizard backed by Gemini image generation",
    version=__version__,
)

# Enable CORS for the local front end
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class UploadRequest(BaseModel):
    """Request body for a photo upload."""
    photo: str  # Base64, with or without a data URL prefix


class ClothingPromptRequest(BaseModel):
    prompt: str


class StateResponse(BaseModel):
    """Snapshot of the wizard session."""
    state: WizardState
    people: list[ImageAsset]
    clothes: list[ImageAsset]
    history: list[HistoryRecord]


# Initialize controller (will be done on first request)
_controller: WizardController | None = None


def get_controller() -> WizardController:
    """Get or create the session controller."""
    global _controller
    if _controller is None:
        config = load_config()  # Loads from .env automatically via pydantic-settings
        _controller = WizardController.from_config(config)
    return _controller


def snapshot(controller: WizardController) -> StateResponse:
    return StateResponse(
        state=controller.state,
        people=list(controller.people.all()),
        clothes=list(controller.clothes.all()),
        history=list(controller.history.all()),
    )


def accepted(controller: WizardController, ok: bool, action: str) -> StateResponse:
    """Return the snapshot, or 409 when the wizard rejected the action."""
    if not ok:
        raise HTTPException(status_code=409, detail=f"{action} is not allowed in the current state")
    return snapshot(controller)


def decode_photo(photo: str) -> bytes:
    try:
        return base64.b64decode(strip_data_prefix(photo), validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=422, detail="photo must be base64 image data") from None


@app.exception_handler(MissingCredentialError)
async def missing_credential_handler(request: Request, exc: MissingCredentialError):
    logger.error("Rejecting %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "VTON Studio API", "version": __version__}


@app.get("/health")
async def health():
    """Detailed health check."""
    controller = get_controller()
    configured = controller.gateway.provider.configured

    return {
        "status": "ok" if configured else "degraded",
        "credential": "configured" if configured else "missing",
    }


@app.get("/api/state", response_model=StateResponse)
async def get_state():
    return snapshot(get_controller())


@app.post("/api/people", response_model=StateResponse)
async def upload_person(request: UploadRequest):
    controller = get_controller()
    asset = controller.upload_person(decode_photo(request.photo))
    return accepted(controller, asset is not None, "Person upload")


@app.post("/api/clothes", response_model=StateResponse)
async def upload_clothing(request: UploadRequest):
    controller = get_controller()
    asset = controller.upload_clothing(decode_photo(request.photo))
    return accepted(controller, asset is not None, "Clothing upload")


@app.post("/api/people/{asset_id}/select", response_model=StateResponse)
async def select_person(asset_id: str):
    controller = get_controller()
    return accepted(controller, controller.select_person(asset_id), "Person selection")


@app.post("/api/clothes/{asset_id}/select", response_model=StateResponse)
async def select_clothing(asset_id: str):
    controller = get_controller()
    return accepted(controller, controller.select_clothing(asset_id), "Clothing selection")


@app.post("/api/clothes/generate", response_model=StateResponse)
async def generate_clothing(request: ClothingPromptRequest):
    """Generate a clothing image from a text description.

    A failed generation still returns 200; the user-facing message is in
    ``state.last_error`` and the prompt is kept for a retry.
    """
    controller = get_controller()
    if not request.prompt.strip():
        raise HTTPException(status_code=422, detail="prompt must not be blank")
    state = controller.state
    if state.current_step != WizardStep.SELECT_CLOTHING or state.clothing_in_flight:
        raise HTTPException(status_code=409, detail="Clothing generation is not allowed in the current state")

    await controller.generate_clothing(request.prompt)
    return snapshot(controller)


@app.post("/api/step/advance", response_model=StateResponse)
async def advance():
    controller = get_controller()
    return accepted(controller, controller.advance(), "Advance")


@app.post("/api/step/retreat", response_model=StateResponse)
async def retreat():
    controller = get_controller()
    return accepted(controller, controller.retreat(), "Back navigation")


@app.post("/api/reset", response_model=StateResponse)
async def reset():
    controller = get_controller()
    return accepted(controller, controller.reset(), "Reset")


@app.post("/api/tryon", response_model=StateResponse)
async def generate_tryon():
    """Generate a virtual try-on for the current selections.

    Returns the session snapshot; on failure ``state.last_error`` is set and
    ``state.last_result`` is empty.
    """
    controller = get_controller()
    if not controller.state.can_generate:
        raise HTTPException(status_code=409, detail="Try-on is not allowed in the current state")

    await controller.generate_try_on()
    return snapshot(controller)


@app.get("/api/history", response_model=list[HistoryRecord])
async def list_history():
    return list(get_controller().history.all())


@app.post("/api/history/{record_id}/select", response_model=StateResponse)
async def select_history(record_id: str):
    controller = get_controller()
    return accepted(controller, controller.select_history(record_id), "History selection")


if __name__ == "__main__":
    import uvicorn

    config = load_config()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host="127.0.0.1", port=8000)

"""Wizard controller: the select person → select clothing → generate flow."""

import asyncio
import logging

from ..config import StudioConfig
from ..errors import (
    DecodeError,
    NoImageReturnedError,
    RemoteError,
    RenderError,
)
from ..models import HistoryRecord, ImageAsset, WizardState, WizardStep
from ..services import (
    AssetCatalog,
    BlobStore,
    GeminiClientProvider,
    GenerationGateway,
    HistoryCache,
    ImagePreprocessor,
)
from ..utils.display import display_url, to_data_url
from ..utils.ids import IdFactory, uuid_ids

logger = logging.getLogger(__name__)


CLOTHING_FAILED_MESSAGE = "Failed to generate clothing. Please try again."
TRYON_FAILED_MESSAGE = "Try-on generation failed. Please check your network or try again later."

# Failures that are reported to the user; anything else (e.g. a missing credential) propagates.
GENERATION_FAILURES = (DecodeError, RenderError, NoImageReturnedError, RemoteError)


class WizardController:
    """Explicit state machine for one try-on session.

    Steps only move forward when the selection for the current step exists
    and move back freely. Actions that are not valid in the current state
    are rejected (``False`` / ``None``) without touching the state.

    Flow for a try-on:
    1. Mark the request in flight and clear the previous result/error
    2. Preprocess both selected images to bounded JPEG payloads
    3. Compose the try-on with the generation gateway
    4. Store the result and prepend a history record
    """

    def __init__(
        self,
        gateway: GenerationGateway,
        preprocessor: ImagePreprocessor,
        people: AssetCatalog | None = None,
        clothes: AssetCatalog | None = None,
        history: HistoryCache | None = None,
        id_factory: IdFactory | None = None,
        max_dimension: int = 800,
    ):
        self.gateway = gateway
        self.preprocessor = preprocessor
        self.people = people if people is not None else AssetCatalog()
        self.clothes = clothes if clothes is not None else AssetCatalog()
        self.id_factory = id_factory or uuid_ids()
        self.history = history if history is not None else HistoryCache(id_factory=self.id_factory)
        self.max_dimension = max_dimension

        self.state = WizardState()

    @classmethod
    def from_config(cls, config: StudioConfig) -> "WizardController":
        """Wire up a controller with the real Gemini gateway."""
        return cls(
            gateway=GenerationGateway(GeminiClientProvider(config.gemini_api_key), config.gemini),
            preprocessor=ImagePreprocessor(BlobStore(), fetch_timeout=config.preprocess.fetch_timeout),
            people=AssetCatalog.from_locations("preset-person", config.preset_people),
            clothes=AssetCatalog.from_locations("preset-clothing", config.preset_clothes),
            max_dimension=config.preprocess.max_dimension,
        )

    @property
    def blob_store(self) -> BlobStore:
        return self.preprocessor.blob_store

    # Step transitions

    def advance(self) -> bool:
        """Move to the next step if the current step's selection is made."""
        if not self.state.can_advance:
            return False
        self.state.current_step = self.state.current_step.next
        return True

    def retreat(self) -> bool:
        """Move back one step. Selections and the last result are kept."""
        previous = self.state.current_step.previous
        if previous is None:
            return False
        self.state.current_step = previous
        return True

    def reset(self) -> bool:
        """Start a new try-on after a completed result."""
        state = self.state
        if (
            state.current_step != WizardStep.GENERATE
            or state.last_result is None
            or state.generation_in_flight
        ):
            return False

        state.selected_person = None
        state.selected_clothing = None
        state.last_result = None
        state.last_error = None
        state.current_step = WizardStep.SELECT_PERSON
        return True

    # Selection

    def select_person(self, asset_id: str) -> bool:
        if self.state.current_step != WizardStep.SELECT_PERSON:
            return False
        asset = self.people.find_by_id(asset_id)
        if asset is None:
            return False
        self.state.selected_person = asset
        return True

    def select_clothing(self, asset_id: str) -> bool:
        if self.state.current_step != WizardStep.SELECT_CLOTHING:
            return False
        asset = self.clothes.find_by_id(asset_id)
        if asset is None:
            return False
        self.state.selected_clothing = asset
        return True

    def upload_person(self, data: bytes) -> ImageAsset | None:
        """Add an uploaded person photo and select it."""
        if self.state.current_step != WizardStep.SELECT_PERSON:
            return None
        asset = self.people.prepend(self._upload_asset("upload-person", data))
        self.state.selected_person = asset
        return asset

    def upload_clothing(self, data: bytes) -> ImageAsset | None:
        """Add an uploaded clothing photo and select it."""
        if self.state.current_step != WizardStep.SELECT_CLOTHING:
            return None
        asset = self.clothes.prepend(self._upload_asset("upload-clothing", data))
        self.state.selected_clothing = asset
        return asset

    def _upload_asset(self, prefix: str, data: bytes) -> ImageAsset:
        return ImageAsset(
            id=self.id_factory(prefix),
            display_location=self.blob_store.create(data),
            is_user_provided=True,
        )

    # Clothing synthesis

    def set_clothing_prompt(self, text: str) -> None:
        self.state.clothing_prompt = text

    async def generate_clothing(self, prompt: str | None = None) -> ImageAsset | None:
        """Generate a clothing image from text, add it to the catalog and select it.

        The prompt is cleared only on success so a failed attempt can be retried.
        """
        if prompt is not None:
            self.state.clothing_prompt = prompt
        state = self.state
        text = state.clothing_prompt

        if (
            state.current_step != WizardStep.SELECT_CLOTHING
            or state.clothing_in_flight
            or not text.strip()
        ):
            return None

        state.clothing_in_flight = True
        state.last_error = None
        try:
            payload = await self.gateway.synthesize_clothing(text)
        except GENERATION_FAILURES as e:
            logger.warning("Clothing generation failed: %s", e)
            state.last_error = CLOTHING_FAILED_MESSAGE
            return None
        finally:
            state.clothing_in_flight = False

        asset = self.clothes.prepend(ImageAsset(
            id=self.id_factory("generated-clothing"),
            display_location=to_data_url(payload, "image/png"),
            cached_payload=payload,
            is_user_provided=True,
        ))
        state.selected_clothing = asset
        state.clothing_prompt = ""
        logger.info("Generated clothing asset %s", asset.id)
        return asset

    # Try-on

    async def generate_try_on(self) -> HistoryRecord | None:
        """Run one try-on request for the current selections.

        Returns:
            The new history record, or None when the request was rejected or failed
        """
        state = self.state
        if not state.can_generate:
            return None

        person = state.selected_person
        clothing = state.selected_clothing

        state.generation_in_flight = True
        state.last_result = None
        state.last_error = None
        logger.info("Starting try-on: person=%s clothing=%s", person.id, clothing.id)

        try:
            person_payload, clothing_payload = await self._normalize_all(
                person.display_location, clothing.display_location
            )
            result_payload = await self.gateway.compose_try_on(person_payload, clothing_payload)

            result_url = to_data_url(result_payload, "image/png")
            state.last_result = result_url
            record = self.history.record(
                person_ref=person.display_location,
                clothing_ref=clothing.display_location,
                result_ref=result_url,
            )
        except GENERATION_FAILURES as e:
            logger.warning("Try-on generation failed: %s", e)
            state.last_error = TRYON_FAILED_MESSAGE
            return None
        finally:
            state.generation_in_flight = False

        logger.info("Try-on complete: %s", record.id)
        return record

    async def _normalize_all(self, *sources: str) -> list[str]:
        """Preprocess sources concurrently; the first failure cancels the rest."""
        tasks = [
            asyncio.ensure_future(self.preprocessor.normalize(source, self.max_dimension))
            for source in sources
        ]
        try:
            return await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    # History

    def select_history(self, record_id: str) -> bool:
        """Show a past result in the generate step without calling the model."""
        if self.state.generation_in_flight:
            return False
        record = self.history.find_by_id(record_id)
        if record is None:
            return False
        # Appended records may carry a bare payload
        self.state.last_result = display_url(record.result_image_ref)
        self.state.current_step = WizardStep.GENERATE
        return True

    async def close(self):
        """Release upload handles and network clients."""
        self.blob_store.clear()
        await self.preprocessor.close()


"""Tests for the wizard state machine and generation lifecycle."""

import asyncio
import base64
import io
from unittest.mock import AsyncMock

import pytest
from PIL import Image

from vton_studio.errors import (
    DecodeError,
    MissingCredentialError,
    NoImageReturnedError,
    RemoteError,
)
from vton_studio.models import HistoryRecord, ImageAsset, WizardStep
from vton_studio.pipeline.wizard import CLOTHING_FAILED_MESSAGE, TRYON_FAILED_MESSAGE


def payload_size(payload: str) -> tuple[int, int]:
    return Image.open(io.BytesIO(base64.b64decode(payload))).size


@pytest.fixture
def ready_controller(controller, make_image_bytes):
    """Controller at GENERATE with an uploaded person and clothing."""
    controller.upload_person(make_image_bytes(2000, 3000, fmt="JPEG"))
    controller.advance()
    controller.upload_clothing(make_image_bytes(500, 500))
    controller.advance()
    assert controller.state.current_step == WizardStep.GENERATE
    return controller


class TestStepTransitions:
    """Tests for advance / retreat / reset."""

    def test_advance_blocked_without_person(self, controller):
        assert controller.advance() is False
        assert controller.state.current_step == WizardStep.SELECT_PERSON

    def test_advance_with_person(self, controller, make_image_bytes):
        controller.upload_person(make_image_bytes(10, 10))

        assert controller.advance() is True
        assert controller.state.current_step == WizardStep.SELECT_CLOTHING

    def test_advance_blocked_without_clothing(self, controller, make_image_bytes):
        controller.upload_person(make_image_bytes(10, 10))
        controller.advance()

        assert controller.advance() is False
        assert controller.state.current_step == WizardStep.SELECT_CLOTHING

    def test_advance_from_generate_is_noop(self, ready_controller):
        assert ready_controller.advance() is False
        assert ready_controller.state.current_step == WizardStep.GENERATE

    def test_retreat_keeps_selections(self, ready_controller):
        person = ready_controller.state.selected_person
        clothing = ready_controller.state.selected_clothing

        assert ready_controller.retreat() is True
        assert ready_controller.retreat() is True
        assert ready_controller.state.current_step == WizardStep.SELECT_PERSON
        assert ready_controller.state.selected_person == person
        assert ready_controller.state.selected_clothing == clothing

    def test_retreat_at_first_step_is_noop(self, controller):
        assert controller.retreat() is False
        assert controller.state.current_step == WizardStep.SELECT_PERSON

    def test_reset_requires_result(self, ready_controller):
        assert ready_controller.reset() is False
        assert ready_controller.state.current_step == WizardStep.GENERATE

    @pytest.mark.asyncio
    async def test_reset_after_result(self, ready_controller):
        await ready_controller.generate_try_on()

        assert ready_controller.reset() is True
        state = ready_controller.state
        assert state.current_step == WizardStep.SELECT_PERSON
        assert state.selected_person is None
        assert state.selected_clothing is None
        assert state.last_result is None
        assert len(ready_controller.history) == 1

    @pytest.mark.asyncio
    async def test_back_navigation_keeps_last_result(self, ready_controller):
        await ready_controller.generate_try_on()

        ready_controller.retreat()

        assert ready_controller.state.last_result == "data:image/png;base64,abc123"


class TestSelection:
    """Tests for selecting and uploading assets."""

    def test_select_person_by_id(self, controller):
        controller.people.prepend(ImageAsset(id="preset-person-1", display_location="p.jpg"))

        assert controller.select_person("preset-person-1") is True
        assert controller.state.selected_person.id == "preset-person-1"

    def test_unknown_id_rejected(self, controller):
        assert controller.select_person("nope") is False
        assert controller.state.selected_person is None

    def test_selection_gated_by_step(self, controller):
        controller.clothes.prepend(ImageAsset(id="shirt", display_location="shirt.jpg"))

        assert controller.select_clothing("shirt") is False
        assert controller.state.selected_clothing is None

    def test_upload_prepends_and_selects(self, controller, make_image_bytes):
        asset = controller.upload_person(make_image_bytes(10, 10))

        assert asset.id == "upload-person-1"
        assert asset.is_user_provided
        assert asset.display_location.startswith("blob:")
        assert controller.people.all()[0] is asset
        assert controller.state.selected_person is asset

    def test_upload_clothing_gated_by_step(self, controller, make_image_bytes):
        assert controller.upload_clothing(make_image_bytes(10, 10)) is None
        assert len(controller.clothes) == 0


class TestTryOn:
    """Tests for the try-on generation lifecycle."""

    @pytest.mark.asyncio
    async def test_scenario_upload_and_generate(self, ready_controller, mock_gateway):
        """Large person is bounded, small clothing untouched, result stored and logged."""
        person = ready_controller.state.selected_person
        clothing = ready_controller.state.selected_clothing

        record = await ready_controller.generate_try_on()

        mock_gateway.compose_try_on.assert_awaited_once()
        person_payload, clothing_payload = mock_gateway.compose_try_on.call_args.args
        width, height = payload_size(person_payload)
        assert height == 800
        assert abs(width / height - 2000 / 3000) < 0.01
        assert payload_size(clothing_payload) == (500, 500)
        assert "data:" not in person_payload

        state = ready_controller.state
        assert state.last_result == "data:image/png;base64,abc123"
        assert state.generation_in_flight is False
        assert state.last_error is None

        assert ready_controller.history.all() == (record,)
        assert record.person_image_ref == person.display_location
        assert record.clothing_image_ref == clothing.display_location
        assert record.result_image_ref == state.last_result

    @pytest.mark.asyncio
    async def test_each_success_adds_history_head(self, ready_controller, mock_gateway):
        first = await ready_controller.generate_try_on()
        mock_gateway.compose_try_on.return_value = "def456"
        second = await ready_controller.generate_try_on()

        assert ready_controller.history.all() == (second, first)
        assert ready_controller.state.last_result == "data:image/png;base64,def456"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        RemoteError("503 from service"),
        NoImageReturnedError("No try-on image generated."),
        DecodeError("corrupt"),
    ])
    async def test_scenario_remote_failure(self, ready_controller, mock_gateway, error):
        """Failures clear the in-flight flag, set an error and keep selections."""
        person = ready_controller.state.selected_person
        clothing = ready_controller.state.selected_clothing
        mock_gateway.compose_try_on.side_effect = error

        record = await ready_controller.generate_try_on()

        state = ready_controller.state
        assert record is None
        assert state.generation_in_flight is False
        assert state.last_result is None
        assert state.last_error == TRYON_FAILED_MESSAGE
        assert state.selected_person == person
        assert state.selected_clothing == clothing
        assert state.current_step == WizardStep.GENERATE
        assert len(ready_controller.history) == 0

    @pytest.mark.asyncio
    async def test_failure_clears_previous_result(self, ready_controller, mock_gateway):
        await ready_controller.generate_try_on()
        mock_gateway.compose_try_on.side_effect = RemoteError("down")

        await ready_controller.generate_try_on()

        assert ready_controller.state.last_result is None
        assert len(ready_controller.history) == 1

    @pytest.mark.asyncio
    async def test_undecodable_upload_fails_before_remote_call(self, controller, mock_gateway, make_image_bytes):
        controller.upload_person(b"not an image")
        controller.advance()
        controller.upload_clothing(make_image_bytes(20, 20))
        controller.advance()

        await controller.generate_try_on()

        mock_gateway.compose_try_on.assert_not_awaited()
        assert controller.state.last_error == TRYON_FAILED_MESSAGE

    @pytest.mark.asyncio
    async def test_failed_preprocessing_cancels_sibling(self, ready_controller, mock_gateway, monkeypatch):
        """No preprocessing work outlives a failed attempt."""
        person_ref = ready_controller.state.selected_person.display_location
        sibling_cancelled = asyncio.Event()

        async def normalize(source, max_dimension):
            if source == person_ref:
                await asyncio.sleep(0)
                raise DecodeError("unreadable person photo")
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                sibling_cancelled.set()
                raise
            return "unused"

        monkeypatch.setattr(ready_controller.preprocessor, "normalize", normalize)

        assert await ready_controller.generate_try_on() is None

        assert sibling_cancelled.is_set()
        assert ready_controller.state.generation_in_flight is False
        assert ready_controller.state.last_error == TRYON_FAILED_MESSAGE
        mock_gateway.compose_try_on.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retry_after_failure(self, ready_controller, mock_gateway):
        mock_gateway.compose_try_on.side_effect = [RemoteError("flaky"), "abc123"]

        await ready_controller.generate_try_on()
        record = await ready_controller.generate_try_on()

        assert record is not None
        assert ready_controller.state.last_error is None
        assert ready_controller.state.last_result == "data:image/png;base64,abc123"

    @pytest.mark.asyncio
    async def test_missing_credential_propagates(self, ready_controller, mock_gateway):
        mock_gateway.compose_try_on.side_effect = MissingCredentialError("no key")

        with pytest.raises(MissingCredentialError):
            await ready_controller.generate_try_on()
        assert ready_controller.state.generation_in_flight is False

    @pytest.mark.asyncio
    async def test_rejected_outside_generate_step(self, controller, mock_gateway):
        assert await controller.generate_try_on() is None
        mock_gateway.compose_try_on.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_second_request_rejected_while_in_flight(self, ready_controller, mock_gateway):
        """The in-flight flag guards against overlapping remote calls."""
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_compose(person, clothing):
            started.set()
            await release.wait()
            return "abc123"

        mock_gateway.compose_try_on = AsyncMock(side_effect=slow_compose)

        first = asyncio.create_task(ready_controller.generate_try_on())
        await started.wait()

        assert ready_controller.state.generation_in_flight is True
        assert ready_controller.state.last_result is None
        assert await ready_controller.generate_try_on() is None
        assert ready_controller.reset() is False

        release.set()
        record = await first

        assert record is not None
        assert mock_gateway.compose_try_on.await_count == 1
        assert ready_controller.state.generation_in_flight is False


class TestClothingGeneration:
    """Tests for the text-to-clothing sub-flow."""

    @pytest.fixture
    def clothing_step(self, controller, make_image_bytes):
        controller.upload_person(make_image_bytes(10, 10))
        controller.advance()
        return controller

    @pytest.mark.asyncio
    async def test_scenario_generate_clothing(self, clothing_step, mock_gateway):
        """Generated asset is prepended, selected and the prompt is cleared."""
        clothing_step.set_clothing_prompt("red silk evening gown")

        asset = await clothing_step.generate_clothing()

        mock_gateway.synthesize_clothing.assert_awaited_once_with("red silk evening gown")
        assert asset.id == "generated-clothing-2"
        assert asset.cached_payload == "xyz789"
        assert asset.display_location == "data:image/png;base64,xyz789"
        assert clothing_step.clothes.all()[0] is asset
        assert clothing_step.state.selected_clothing is asset
        assert clothing_step.state.clothing_prompt == ""
        assert clothing_step.state.clothing_in_flight is False

    @pytest.mark.asyncio
    async def test_failure_keeps_prompt(self, clothing_step, mock_gateway):
        mock_gateway.synthesize_clothing.side_effect = NoImageReturnedError("No image generated.")

        asset = await clothing_step.generate_clothing("blue denim jacket")

        assert asset is None
        assert clothing_step.state.clothing_prompt == "blue denim jacket"
        assert clothing_step.state.last_error == CLOTHING_FAILED_MESSAGE
        assert clothing_step.state.clothing_in_flight is False
        assert len(clothing_step.clothes) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("prompt", ["", "   "])
    async def test_blank_prompt_not_sent(self, clothing_step, mock_gateway, prompt):
        assert await clothing_step.generate_clothing(prompt) is None
        mock_gateway.synthesize_clothing.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_only_in_clothing_step(self, controller, mock_gateway):
        assert await controller.generate_clothing("a hat") is None
        mock_gateway.synthesize_clothing.assert_not_awaited()


class TestHistoryReplay:
    """Tests for replaying history records."""

    @pytest.mark.asyncio
    async def test_replay_from_any_step(self, ready_controller, mock_gateway):
        record = await ready_controller.generate_try_on()
        mock_gateway.compose_try_on.return_value = "def456"
        await ready_controller.generate_try_on()
        ready_controller.retreat()
        ready_controller.retreat()

        assert ready_controller.select_history(record.id) is True

        assert ready_controller.state.current_step == WizardStep.GENERATE
        assert ready_controller.state.last_result == record.result_image_ref
        assert mock_gateway.compose_try_on.await_count == 2
        assert len(ready_controller.history) == 2

    def test_bare_payload_record_replays_as_data_url(self, controller):
        controller.history.append(HistoryRecord(
            id="imported-1",
            person_image_ref="https://example.com/p.jpg",
            clothing_image_ref="https://example.com/c.jpg",
            result_image_ref="abc123",
        ))

        assert controller.select_history("imported-1") is True
        assert controller.state.last_result == "data:image/jpeg;base64,abc123"

    def test_unknown_record_rejected(self, controller):
        assert controller.select_history("history-404") is False
        assert controller.state.current_step == WizardStep.SELECT_PERSON


class TestClose:
    @pytest.mark.asyncio
    async def test_close_releases_uploads(self, controller, make_image_bytes):
        controller.upload_person(make_image_bytes(10, 10))

        await controller.close()

        assert len(controller.blob_store) == 0

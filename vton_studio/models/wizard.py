"""Wizard step and state models."""

from enum import IntEnum

from pydantic import BaseModel, Field

from .asset import ImageAsset


class WizardStep(IntEnum):
    """Ordered wizard steps."""
    SELECT_PERSON = 1
    SELECT_CLOTHING = 2
    GENERATE = 3

    @property
    def next(self) -> "WizardStep | None":
        return WizardStep(self + 1) if self < WizardStep.GENERATE else None

    @property
    def previous(self) -> "WizardStep | None":
        return WizardStep(self - 1) if self > WizardStep.SELECT_PERSON else None


class WizardState(BaseModel):
    """Complete state of one try-on session."""

    current_step: WizardStep = WizardStep.SELECT_PERSON
    selected_person: ImageAsset | None = None
    selected_clothing: ImageAsset | None = None

    # Try-on request
    last_result: str | None = Field(default=None, description="data: URL of the displayed result")
    generation_in_flight: bool = False
    last_error: str | None = None

    # Clothing synthesis sub-flow
    clothing_prompt: str = ""
    clothing_in_flight: bool = False

    @property
    def can_advance(self) -> bool:
        """Whether the selection required to leave the current step is present."""
        if self.current_step == WizardStep.SELECT_PERSON:
            return self.selected_person is not None
        if self.current_step == WizardStep.SELECT_CLOTHING:
            return self.selected_clothing is not None
        return False

    @property
    def can_generate(self) -> bool:
        return (
            self.current_step == WizardStep.GENERATE
            and self.selected_person is not None
            and self.selected_clothing is not None
            and not self.generation_in_flight
        )

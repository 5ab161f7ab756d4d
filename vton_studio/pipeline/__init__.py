"""Try-on wizard pipeline."""

from .wizard import WizardController

__all__ = ["WizardController"]

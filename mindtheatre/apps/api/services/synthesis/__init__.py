from .synthesizer import (
    DraftAssessment,
    MAX_DEPTH,
    SynthesisError,
    SynthesisState,
    Synthesizer,
    assess_draft,
)

__all__ = [
    "DraftAssessment",
    "MAX_DEPTH",
    "SynthesisError",
    "SynthesisState",
    "Synthesizer",
    "assess_draft",
]

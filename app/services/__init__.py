from app.services.normalizer import normalize_text, split_words
from app.services.pipeline import PipelineResult, ResponsePipeline, Tier
from app.services.state_machine import (
    InvalidTransitionError,
    UserState,
    can_transition,
    consume_context,
    open_context,
    transition,
)

"""Inference providers for agent nodes."""

from .inference import (
    ClaudeCliCapability,
    CritiqueContext,
    InferenceCapability,
    InferenceContext,
    InferenceError,
    InferenceResult,
    MockCapability,
    build_capability,
)

__all__ = [
    "ClaudeCliCapability",
    "CritiqueContext",
    "InferenceCapability",
    "InferenceContext",
    "InferenceError",
    "InferenceResult",
    "MockCapability",
    "build_capability",
]

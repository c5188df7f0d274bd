"""Prompt composition for schema-constrained extraction."""

from .composer import Prompt, build_output_shape, build_response_skeleton, compose

__all__ = ["Prompt", "build_output_shape", "build_response_skeleton", "compose"]

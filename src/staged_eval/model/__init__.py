"""Staged additive models."""

from staged_eval.model.staged import StagedModel, Stump, StumpEnsemble, load_model

__all__ = ["StagedModel", "Stump", "StumpEnsemble", "load_model"]

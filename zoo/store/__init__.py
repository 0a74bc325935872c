"""Prediction persistence boundary (upsert by id, list by submission)."""

from zoo.store.prediction_store import InMemoryPredictionStore, JsonPredictionStore, PredictionStore

__all__ = ["InMemoryPredictionStore", "JsonPredictionStore", "PredictionStore"]

"""Core orchestration package.

Architectural role:
    Turns one prompt plus a model selection into a submission of independent
    predictions, drives async-job predictions to a terminal state, and keeps an
    ordered per-submission view of the results.

Composition:
    - `models`: Prediction, ModelDescriptor, GenerationRequest, status machine.
    - `errors`: error taxonomy.
    - `poller`: fixed-interval status poller with cancellation.
    - `reconciler`: ordered pending/resolved/failed slot collection.
    - `orchestrator`: fan-out and task tracking.
    - `catalog`, `submission_view`: catalog loading and read-side helpers.
"""

"""Image-generation provider adapters.

Scope:
    Translates a provider-agnostic `GenerationRequest` into one provider call and
    normalizes the response into a `Prediction`.

Module split:
    - `provider_config`: environment-driven endpoints, credentials and knobs.
    - `base`: adapter protocol and shared response parsing.
    - `replicate_client`: async job provider (submit, then poll/webhook).
    - `openai_client`, `stability_client`: sync call-and-return providers.
    - `registry`: `ProviderKind` -> adapter map built once at startup.
"""

"""Zoo API adapter package.

Architectural role:
- Defines the external interaction boundary for HTTP and CLI interfaces.
- Performs transport-level validation and response shaping.
- Delegates fan-out and tracking to the core orchestrator.
"""

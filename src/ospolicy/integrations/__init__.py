"""
ospolicy.integrations - External Service Integration Layer
============================================================

Adapters for the remote services the pipeline is a client of. Each
integration is abstracted behind an interface so the real client and the
mock can be swapped by configuration.

Sub-packages:
    catalog/   - Sensor installer distribution API (Falcon, Mock)
"""

__all__: list[str] = []

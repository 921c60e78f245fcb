"""
Carton Core - Building blocks shared by plugins and the container.

This module contains:
- Utils: Completion normalization and the current-plugin context
- Emitter: Per-plugin lifecycle notifications
- Services: Type-checked service registry exposed on the container
"""

__all__ = []

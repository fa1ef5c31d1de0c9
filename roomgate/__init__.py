"""
Roomgate - a membership-gated messaging facade for Matrix clients.

This package wraps an injected matrix-nio client with:
- Room join-state checks and joined member listing
- Guarded plain and encrypted message sending
- Filtered message subscriptions with cancellable handles
- Power-level gated invites
- Password login, auto-join and private encrypted room creation helpers
"""

__version__ = "0.1.0"
__author__ = "Roomgate Team"

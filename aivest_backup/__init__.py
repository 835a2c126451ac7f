"""
AIVest Backup - Source Package

Backup & restore subsystem for the AIVest personal-finance tracker.
Packages the user's local financial data, stamps it with an integrity
digest and keeps one copy per user in a remote document store.

DESIGN PRINCIPLES:
1. Backups are best-effort, the local store stays authoritative
2. Never crash the host application (booleans at the boundary)
3. Restore must be idempotent (no duplicate accumulation)
4. Every failure is logged with enough context to diagnose it
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "AIVest Team"

"""
Scripts Package.

Operational scripts for the account guard engine.

Scripts:
- run_simulation: Attack-and-recovery demo against a live session
"""

# Scripts are meant to be run directly, not imported

"""
Scripts Package.

Operational scripts for the ETRM pipeline.

Scripts:
- verify_database: Create tables and verify end-to-end persistence
"""

# Scripts are meant to be run directly, not imported

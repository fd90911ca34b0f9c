"""
Operational utilities: Discord monitoring sink and pre-flight checks.
"""

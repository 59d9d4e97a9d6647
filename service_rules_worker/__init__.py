"""
Rules worker service.
"""

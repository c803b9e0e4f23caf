"""Core domain package for breakwatch.

Core contains condition evaluation, rule matching, and notification dedup
logic without any browser or storage-specific code, keeping the business
logic portable.
"""

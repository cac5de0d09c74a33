"""Core domain package for inbox triage.

Core contains rules, whitelist, deduplication and alert correlation logic
plus the cycle orchestration, without any Gmail or filesystem-specific code,
keeping the business logic portable.
"""

"""
Request gate — checks that run before a submission reaches the validator.

Modules:
    origins     — browser origin allow-list
    rate_limit  — fixed-window per-IP limiter (memory or Redis)
"""

"""
app — FastAPI service for the contact form.

Sub-packages:
    core    — settings, logging, errors, middleware
    gate    — origin allow-list and rate limiting in front of the dispatcher
    notify  — validation, provider registry, channel adapters, dispatcher
    api     — HTTP routes and response schemas
"""

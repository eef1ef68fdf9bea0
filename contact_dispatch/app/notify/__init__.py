"""
Notification dispatch core.

    validator   raw form fields → ContactSubmission | field errors
    registry    Settings → ordered ProviderConfig list
    channels    one adapter per provider protocol (smtp, http_api)
    composer    submission → Message envelopes
    dispatcher  verify → send → fallback, producing a DispatchOutcome
    formatter   outcome / error → client JSON body
"""

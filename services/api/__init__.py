"""
Listing Services - Filtered Views Over Records

Responsibilities:
- Compile sparse filter requests into composite filters (one builder per entity kind)
- Serve paged and unpaginated listings for products, users and audit logs
- Provide user statistics and audit dashboard series
- Record audit events

HTTP routing and request/response shaping live outside this package; callers
pass already-parsed filter models and the caller's timezone name.
"""

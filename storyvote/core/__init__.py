"""Game session core: vote tally, session state machine and event publishing.

Kept free of FastAPI concerns so it can be reused by API routes and tests.
"""

"""
Pydantic schema definitions for API payloads.

Most request fields are optional.  Missing values reach the services,
which report them as ``validation_error`` with the offending field name.
"""

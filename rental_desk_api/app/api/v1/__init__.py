"""
Version 1 of the API.

The front desk screens, the hotel partner form and the admin pages all
talk to the endpoints bundled here under ``/api/v1``.
"""

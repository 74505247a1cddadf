"""
Core infrastructure: settings, logging, the error taxonomy, the Rentals
sheet column registry, the Google Sheets row store and the staff
sign-in check.
"""

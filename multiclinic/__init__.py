"""
Multi-Clinic Healthcare System

FastAPI backend for running several clinics on one platform: staff
onboarding, conflict-free appointment scheduling across timezones,
billing with partial payments, and in-app notifications.
"""

__version__ = "1.0.0"

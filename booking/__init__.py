"""Booking core: availability, payment reconciliation and change notifications."""

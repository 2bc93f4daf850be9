"""Scheduled tasks and their runner."""

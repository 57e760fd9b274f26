"""Reminder delivery and notification content."""

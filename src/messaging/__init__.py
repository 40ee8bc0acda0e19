"""Messaging integrations that deliver dose reminders outside the process."""

"""Third-party integrations: Google Calendar and Home Assistant."""

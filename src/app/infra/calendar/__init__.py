"""Integracao com Google Calendar (transporte da API e OAuth)."""

from app.infra.calendar.google_calendar_client import GoogleCalendarProvider
from app.infra.calendar.google_oauth_client import GoogleOAuthTokenRefresher

__all__ = ["GoogleCalendarProvider", "GoogleOAuthTokenRefresher"]

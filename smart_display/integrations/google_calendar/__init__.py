"""Google Calendar integration: OAuth lifecycle, token refresh and event reads."""
from .client import GoogleCalendarClient
from .oauth import GoogleAuthorizationFlow, GoogleOAuthClient, OAuthFlowRegistry, OAuthResult
from .schemas import CalendarEvent, CalendarListEntry, OAuthTokens
from .tokens import CredentialStore, TokenRefresher

__all__ = [
    "CalendarEvent",
    "CalendarListEntry",
    "CredentialStore",
    "GoogleAuthorizationFlow",
    "GoogleCalendarClient",
    "GoogleOAuthClient",
    "OAuthFlowRegistry",
    "OAuthResult",
    "OAuthTokens",
    "TokenRefresher",
]

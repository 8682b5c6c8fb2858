from datetime import datetime, timezone
from typing import List, Optional

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from availability.core.config import settings
from availability.core.exceptions import ProviderUnavailable
from availability.models.scheduling import CalendarTokens
from availability.utils.audit_logger import audit_logger


def credentials_from_tokens(
    user_id: str,
    tokens: CalendarTokens,
    scopes: Optional[List[str]] = None
) -> Credentials:
    """
    Build Google OAuth2 credentials from the tokens supplied by the caller.

    Args:
        user_id: ID of the user
        tokens: CalendarTokens with the access token and optional refresh data
        scopes: List of OAuth scopes required

    Returns:
        Google OAuth2 credentials

    Raises:
        ProviderUnavailable: If the credentials are expired and cannot be refreshed
    """
    expiry = None
    if tokens.expiry_date is not None:
        # google-auth compares expiry against naive UTC
        expiry = datetime.fromtimestamp(tokens.expiry_date / 1000, tz=timezone.utc).replace(tzinfo=None)

    credentials = Credentials(
        token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_uri=settings.GOOGLE_TOKEN_URI,
        client_id=settings.GOOGLE_CLIENT_ID,
        client_secret=settings.GOOGLE_CLIENT_SECRET,
        scopes=scopes or settings.GOOGLE_CALENDAR_SCOPES,
        expiry=expiry
    )

    if credentials.expired and credentials.refresh_token:
        try:
            credentials.refresh(Request())
        except Exception as e:
            audit_logger.log(
                action="credentials_refresh",
                resource_type="oauth_credentials",
                status="failure",
                user_id=user_id,
                details={"error": str(e)}
            )
            raise ProviderUnavailable(f"Failed to refresh credentials: {e}", cause=e) from e

        audit_logger.log(
            action="credentials_refresh",
            resource_type="oauth_credentials",
            status="success",
            user_id=user_id
        )

    return credentials

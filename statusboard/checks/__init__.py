"""Check plugins for the external dependencies this backend relies on."""

from __future__ import annotations

from ..config import Settings
from ..health.engine import CheckExecutor
from ..secrets import SecretResolver
from .companies_house import CompaniesHousePingCheck
from .dataforseo import DataForSeoAccountCheck
from .google import GoogleOAuthCheck, GooglePlacesConfigCheck
from .openai import OpenAIConfigCheck
from .sendgrid import SendGridProfileCheck
from .zoho import ZohoCrmCheck


def build_default_checks(
    settings: Settings, resolver: SecretResolver | None = None,
) -> list[CheckExecutor]:
    """Instantiate every bundled plugin from configuration."""
    resolver = resolver or SecretResolver()
    return [
        SendGridProfileCheck(
            api_key=settings.sendgrid_api_key,
            base_url=settings.sendgrid_base_url,
        ),
        CompaniesHousePingCheck(
            api_key=settings.companies_house_api_key,
            base_url=settings.companies_house_base_url,
        ),
        GooglePlacesConfigCheck(api_key=settings.google_api_key),
        GoogleOAuthCheck(
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            refresh_token=settings.google_refresh_token,
            refresh_token_ref=settings.google_refresh_token_ref,
            token_url=settings.google_token_url,
            resolver=resolver,
        ),
        OpenAIConfigCheck(
            api_key=settings.openai_api_key,
            api_key_ref=settings.openai_api_key_ref,
            base_url=settings.openai_base_url,
            resolver=resolver,
        ),
        ZohoCrmCheck(
            accounts_base_url=settings.zoho_accounts_base_url,
            crm_base_url=settings.zoho_crm_base_url,
            client_id=settings.zoho_client_id,
            client_secret=settings.zoho_client_secret,
            refresh_token=settings.zoho_refresh_token,
            refresh_token_ref=settings.zoho_refresh_token_ref,
            resolver=resolver,
        ),
        DataForSeoAccountCheck(
            login=settings.dataforseo_login,
            password=settings.dataforseo_password,
            base_url=settings.dataforseo_base_url,
        ),
    ]

"""Shared API utilities."""

from gamerun.models import Profile
from gamerun.services.whatsapp import WhatsAppService


def member_display_name(profile: Profile | None) -> str:
    """Nickname when set, else the profile name. Never empty."""
    if not profile:
        return "Membro removido"
    name = (profile.nickname or "").strip() or (profile.name or "").strip()
    return name or f"Membro #{profile.id}"


def get_whatsapp_service() -> WhatsAppService:
    """Dependency returning the configured WhatsApp client."""
    return WhatsAppService()

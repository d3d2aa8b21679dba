import logging
import re

logger = logging.getLogger(__name__)

_SEPARATORS = re.compile(r"[\s\-()+]")
_WHATSAPP_SUFFIX = re.compile(r"@(c\.us|s\.whatsapp\.net)$")


class PhoneNumberNormalizer:
    """
    Russian phone number normalizer.

    Every phone used as a cache or ownership key goes through here so that
    "+7 (999) 123-45-67", "89991234567" and "79991234567@c.us" map to the same
    conversation.
    """

    COUNTRY_CODE = "7"
    TRUNK_PREFIX = "8"

    def normalize(self, phone_number: str | None) -> str | None:
        """
        Normalize a phone number to the 7XXXXXXXXXX format.

        Args:
            phone_number: Raw phone or WhatsApp JID

        Returns:
            Normalized number, or None for empty input
        """
        if not phone_number:
            return None

        clean_number = _WHATSAPP_SUFFIX.sub("", phone_number.strip())
        clean_number = _SEPARATORS.sub("", clean_number)
        if not clean_number:
            return None

        if clean_number.startswith(self.TRUNK_PREFIX):
            clean_number = self.COUNTRY_CODE + clean_number[1:]
        elif not clean_number.startswith(self.COUNTRY_CODE):
            clean_number = self.COUNTRY_CODE + clean_number

        logger.debug(f"Normalized phone {phone_number} -> {clean_number}")
        return clean_number


_normalizer = PhoneNumberNormalizer()


def normalize_phone(phone_number: str | None) -> str | None:
    """Normalize a phone number with the shared normalizer."""
    return _normalizer.normalize(phone_number)

import re
from typing import Any, Iterable

import structlog

from chat_analytics.models.event import DIRECT

logger = structlog.get_logger()

_PARTNER_CODE_RE = re.compile(r"^[A-Za-z0-9_-]{2,80}$")

ACCESS_DIRECT = "direct"
ACCESS_PARTNER = "partner"


def sanitize(raw: Any) -> str:
    """Trimmed code if it is syntactically valid, otherwise an empty string"""
    if not isinstance(raw, str):
        return ""
    value = raw.strip()
    return value if _PARTNER_CODE_RE.fullmatch(value) else ""


def derive_access_type(partner_code: str) -> str:
    return ACCESS_DIRECT if partner_code == DIRECT else ACCESS_PARTNER


class PartnerNormalizer:
    """Canonicalizes partner codes against the configured allowlist.

    With an empty allowlist every syntactically valid code is attributed to
    itself. That keeps attribution working before partners are configured,
    but such codes are never valid as shareable landing links.
    """

    def __init__(self, allowlist: Iterable[str] = ()):
        self.allowlist = frozenset(allowlist)

    @property
    def permissive(self) -> bool:
        return not self.allowlist

    def normalize(self, raw: Any) -> str:
        code = sanitize(raw)
        if not code or code == DIRECT:
            return DIRECT

        if self.allowlist and code not in self.allowlist:
            logger.debug("partner_code_downgraded", partner_code=code)
            return DIRECT

        return code

    def is_valid_for_routing(self, raw: Any) -> bool:
        code = sanitize(raw)
        if not code or code == DIRECT or self.permissive:
            return False
        return code in self.allowlist

    def resolve(self, raw: Any) -> tuple[str, str]:
        """(partner_code, access_type) for a raw code"""
        code = self.normalize(raw)
        return code, derive_access_type(code)

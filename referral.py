"""Referral codes and referrer crediting."""

from __future__ import annotations

import logging
import random
import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cloud_store import UserCollection

logger = logging.getLogger(__name__)

_rng = random.SystemRandom()


def generate_referral_code(name: str, rng: random.Random | None = None) -> str:
    """Three letters from the name plus four random digits, e.g. ``TUN4821``.

    Names with fewer than three letters are padded with ``X``.
    """
    rng = rng or _rng
    letters = re.sub(r"[^A-Za-z]", "", name or "").upper()[:3].ljust(3, "X")
    digits = "".join(str(rng.randint(0, 9)) for _ in range(4))
    return f"{letters}{digits}"


def credit_referrer(users: UserCollection, code: str, new_user_email: str = "") -> bool:
    """Increment the referral counter of the user owning ``code``.

    An unknown code is not an error: the registration that carried it still
    succeeds. Returns True when a referrer was credited.
    """
    code = (code or "").strip().upper()
    if not code:
        return False
    referrer = users.get_by_referral_code(code)
    if not referrer:
        logger.info("Referral code %s matched no user (new user %s)", code, new_user_email)
        return False
    if referrer.get("email") == new_user_email:
        return False
    users.increment_referrals(referrer["objectId"])
    logger.info("Credited referral %s to %s", code, referrer.get("email"))
    return True

"""Membership status derived from the plan expiry date."""

from datetime import date

EXPIRED = "expired"
EXPIRING_SOON = "expiring_soon"
EXPIRY_WARNING_DAYS = 7


def derive_membership_status(
    stored_status: str | None,
    expiry_date: date | None,
    *,
    today: date,
) -> str:
    """Override the stored status when the expiry date says otherwise.

    Past expiry is ``expired``; expiry within the next 7 days (today
    included) is ``expiring_soon``. Without an expiry date the stored status
    stands.
    """
    if expiry_date is None:
        return stored_status or ""
    days_until_expiry = (expiry_date - today).days
    if days_until_expiry < 0:
        return EXPIRED
    if days_until_expiry <= EXPIRY_WARNING_DAYS:
        return EXPIRING_SOON
    return stored_status or ""

"""Salewatch core domain models.

Defines the transient :class:`ListingSnapshot` produced by a price source,
the persisted :class:`Group` / :class:`Subscription` views read from the
tracking store, and the :class:`AlertMessage` handed to the notification
sink.

All models are **frozen** pydantic models so they can be passed between
coroutines without accidental mutation.

Typical usage::

    from salewatch.core.models import ListingSnapshot

    snapshot = ListingSnapshot(
        listing_id=620,
        name="Portal 2",
        discount=90,
        initial_price="$9.99",
        final_price="$0.99",
    )
    snapshot.url          # 'https://store.steampowered.com/app/620'
"""

from __future__ import annotations

import logging
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator

__all__ = [
    "STORE_URL_PREFIX",
    "DEFAULT_SALE_THRESHOLD",
    "ListingSnapshot",
    "Group",
    "Subscription",
    "AlertKind",
    "AlertField",
    "AlertMessage",
]

logger = logging.getLogger(__name__)

#: Storefront page prefix; the listing id is appended.
STORE_URL_PREFIX: str = "https://store.steampowered.com/app/"

#: Discount percentage a new group alerts on until it configures its own.
DEFAULT_SALE_THRESHOLD: int = 1


# ---------------------------------------------------------------------------
# Price source snapshot
# ---------------------------------------------------------------------------


class ListingSnapshot(BaseModel):
    """Current price / availability state of one listing.

    Produced by a price source for a single scan iteration and never
    persisted.  Only :attr:`discount` and :attr:`release_pending` feed the
    subscription flags; everything else is alert content.

    Attributes:
        listing_id: Storefront id of the listing.
        name: Display name.
        discount: Discount percentage, 0–100 (100 for free giveaways).
        initial_price: Formatted pre-discount price.  Empty when the source
            omits pricing (free or unreleased listings).
        final_price: Formatted current price.  Empty when unpriced.
        is_free: ``True`` for free-to-play listings.
        release_pending: ``True`` while the listing is marked "coming soon".
        reviews: Total recommendation count.
        description: Short description text.
        image_url: Header image URL, ``None`` when absent.
    """

    model_config = {"frozen": True}

    listing_id: int = Field(..., gt=0)
    name: str = Field(default="")
    discount: int = Field(default=0, ge=0, le=100)
    initial_price: str = Field(default="")
    final_price: str = Field(default="")
    is_free: bool = Field(default=False)
    release_pending: bool = Field(default=False)
    reviews: int = Field(default=0, ge=0)
    description: str = Field(default="")
    image_url: str | None = Field(default=None)

    @field_validator("image_url", mode="before")
    @classmethod
    def _image_url_blank_to_none(cls, v: object) -> object:
        """Coerce a blank image URL to None rather than raising."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def url(self) -> str:
        """Storefront page for this listing."""
        return f"{STORE_URL_PREFIX}{self.listing_id}"

    @property
    def price_label(self) -> str:
        """Current price for display; ``"Free"`` when the source gave none."""
        return self.final_price or "Free"

    @property
    def on_sale(self) -> bool:
        return self.discount > 0


# ---------------------------------------------------------------------------
# Tracking store views
# ---------------------------------------------------------------------------


class Group(BaseModel):
    """A subscriber community.

    Attributes:
        group_id: Unique group identifier.
        chat_id: Notification destination.  ``None`` until one is bound.
        sale_threshold: Default minimum discount (percent) that triggers a
            sale alert for this group's subscriptions.
    """

    model_config = {"frozen": True}

    group_id: int
    chat_id: str | None = None
    sale_threshold: int = Field(default=DEFAULT_SALE_THRESHOLD, ge=1, le=99)


class Subscription(BaseModel):
    """One tracked (listing, group) pair with the group's settings joined in.

    Attributes:
        listing_id: Tracked listing.
        group_id: Subscribed group.
        chat_id: The group's notification destination (``None`` = unset).
        group_threshold: The group's default sale threshold.
        threshold_override: Per-subscription threshold; ``None`` or ``0``
            means "use the group default".
        trailing_sale_day: ``True`` if the last successful check saw a
            non-zero discount.
        coming_soon: ``True`` if the last successful check saw the listing
            as release-pending.
    """

    model_config = {"frozen": True}

    listing_id: int
    group_id: int
    chat_id: str | None = None
    group_threshold: int = DEFAULT_SALE_THRESHOLD
    threshold_override: int | None = None
    trailing_sale_day: bool = False
    coming_soon: bool = False

    @property
    def effective_threshold(self) -> int:
        """Override if set and positive, otherwise the group default."""
        if self.threshold_override is not None and self.threshold_override > 0:
            return self.threshold_override
        return self.group_threshold

    @property
    def has_destination(self) -> bool:
        return bool(self.chat_id)


# ---------------------------------------------------------------------------
# Structured alert
# ---------------------------------------------------------------------------


class AlertKind(StrEnum):
    """Why an alert is being sent."""

    SALE = "sale"
    RELEASE = "release"


class AlertField(BaseModel):
    """One labelled value inside an :class:`AlertMessage`."""

    model_config = {"frozen": True}

    name: str
    value: str
    inline: bool = False


class AlertMessage(BaseModel):
    """Transport-agnostic alert handed to the notification sink.

    Attributes:
        kind: Sale or release alert.
        title: Headline.
        url: Link to the storefront page.
        image_url: Optional header image.
        color: 24-bit RGB colour used to badge the alert.
        fields: Ordered labelled values.
    """

    model_config = {"frozen": True}

    kind: AlertKind
    title: str = Field(..., min_length=1)
    url: str
    image_url: str | None = None
    color: int = Field(default=0xFFFFFF, ge=0, le=0xFFFFFF)
    fields: tuple[AlertField, ...] = ()

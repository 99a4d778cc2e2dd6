"""
Web push notifications for PWA clients (new messages, waitlist promotions)
"""

import json
import logging
from typing import Optional

from pywebpush import WebPushException, webpush
from sqlalchemy.orm import Session

from .config import VAPID_CLAIMS_EMAIL, VAPID_PRIVATE_KEY
from .models_messaging import PushSubscription

logger = logging.getLogger(__name__)


def build_subscription_info(subscription: PushSubscription) -> dict:
    return {
        "endpoint": subscription.endpoint,
        "keys": {"p256dh": subscription.p256dh, "auth": subscription.auth},
    }


def send_push_to_profile(
    db: Session,
    profile_id: int,
    title: str,
    body: str,
    url: Optional[str] = None,
    tag: Optional[str] = None,
) -> int:
    """
    Deliver a notification to every subscription of a profile.
    Returns how many deliveries succeeded. Subscriptions the push service
    reports as gone (404/410) are removed.
    """
    if not VAPID_PRIVATE_KEY:
        logger.debug("VAPID_PRIVATE_KEY not configured - push disabled")
        return 0

    subscriptions = (
        db.query(PushSubscription).filter(PushSubscription.profile_id == profile_id).all()
    )
    if not subscriptions:
        return 0

    payload = {"title": title, "body": body, "tag": tag or "default-notification"}
    if url:
        payload["url"] = url

    delivered = 0
    expired = []
    for subscription in subscriptions:
        try:
            webpush(
                subscription_info=build_subscription_info(subscription),
                data=json.dumps(payload),
                vapid_private_key=VAPID_PRIVATE_KEY,
                vapid_claims={"sub": f"mailto:{VAPID_CLAIMS_EMAIL}"},
            )
            delivered += 1
        except WebPushException as e:
            status_code = e.response.status_code if e.response is not None else None
            if status_code in (404, 410):
                logger.info(f"🗑️ Push subscription {subscription.id} expired ({status_code})")
                expired.append(subscription)
            else:
                logger.warning(f"⚠️ Push delivery failed for subscription {subscription.id}: {e}")

    if expired:
        for subscription in expired:
            db.delete(subscription)
        db.commit()

    logger.info(f"🔔 Push sent to profile {profile_id}: {delivered}/{len(subscriptions)} delivered")
    return delivered

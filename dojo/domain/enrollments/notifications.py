"""Family notifications for enrollment changes"""

import logging

from sqlalchemy.orm import Session

from ...email_service import send_waitlist_promoted
from ...models import Enrollment, Profile
from ...push_service import send_push_to_profile

logger = logging.getLogger(__name__)


async def notify_waitlist_promotions(db: Session, enrollments: list[Enrollment]) -> None:
    """Email and push the family of every promoted student; failures are logged only"""
    for enrollment in enrollments:
        student = enrollment.student
        family = student.family if student else None
        class_name = enrollment.class_.name if enrollment.class_ else "class"
        if not family:
            continue

        if family.email:
            try:
                await send_waitlist_promoted(family.email, family.name, student.full_name, class_name)
            except Exception as e:
                logger.error(f"❌ Failed to send waitlist promotion email for enrollment {enrollment.id}: {e}")

        profiles = db.query(Profile).filter(Profile.family_id == family.id).all()
        for profile in profiles:
            try:
                send_push_to_profile(
                    db,
                    profile.id,
                    title="Off the waitlist",
                    body=f"{student.full_name} is now enrolled in {class_name}",
                    url="/family",
                    tag=f"enrollment-{enrollment.id}",
                )
            except Exception as e:
                logger.error(f"❌ Push for enrollment {enrollment.id} failed: {e}")

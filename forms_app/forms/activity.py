from __future__ import annotations

import logging

from .models import Activity, Form, Share, Submission

logger = logging.getLogger(__name__)


def publish_new_share(form: Form, share: Share, actor) -> Activity | None:
    """Tell the user or group a form was shared with them. Link shares have no audience."""
    if share.share_type == Share.Type.USER:
        subject = Activity.Subject.NEW_SHARE
    elif share.share_type == Share.Type.GROUP:
        subject = Activity.Subject.NEW_GROUP_SHARE
    else:
        return None
    activity = Activity.objects.create(
        form=form, actor=actor, subject=subject, affected=share.share_with
    )
    logger.info(
        "Form %s shared with %s %s by %s",
        form.hash,
        share.get_share_type_display().lower(),
        share.share_with,
        actor.get_username(),
    )
    return activity


def publish_new_submission(form: Form, submission: Submission) -> Activity:
    # submission.user is empty for anonymous forms, which keeps the actor hidden
    return Activity.objects.create(
        form=form,
        actor=submission.user,
        subject=Activity.Subject.NEW_SUBMISSION,
        affected=form.owner.get_username(),
    )

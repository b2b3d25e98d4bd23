from flask import current_app

from forumapi.extensions import db
from forumapi.models import LoginHistory, User, UserHistory, utcnow


def create_login_history(status, user, ip_address, commit=True):
    now = utcnow()
    User.query.filter_by(id=user.id).update({'last_login_date': now})
    db.session.add(LoginHistory(
        created_date=now,
        user_id=user.id,
        ip_address=ip_address,
        status=status,
    ))
    if commit:
        db.session.commit()
    user.last_login_date = now


def create_user_history(event_type, event_data, target_user, commit=True):
    history = UserHistory(
        version=1,
        created_date=utcnow(),
        event_type=event_type,
        event_data=event_data,
        user_id=target_user.id,
    )
    db.session.add(history)
    if commit:
        db.session.commit()
    current_app.logger.info(f"User history for {target_user.id}: {event_type} {event_data}")
    return history


def get_user_history(target_user):
    return UserHistory.query.filter_by(user_id=target_user.id)\
        .order_by(UserHistory.created_date.desc(), UserHistory.id.desc()).all()

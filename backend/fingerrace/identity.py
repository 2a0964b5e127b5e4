"""Device identity provider.

Every browser gets an opaque id before its first room operation. The id is
kept in Flask-Login's session and remember cookie, so reloading the page or
reconnecting keeps the same player in the same room.
"""

from uuid import uuid4

from flask_login import current_user, login_user

from fingerrace.models import DeviceIdentity


def get_or_create_identity() -> str:
    if current_user.is_authenticated:
        return current_user.get_id()
    identity = DeviceIdentity(uuid4().hex)
    login_user(identity, remember=True)
    return identity.id

"""Sample events service used as the application under test.

The service keeps users and events per tenant in a real SQL database.
Event names are unique per tenant, enforced by a database constraint;
a duplicate is reported with the `EVENT-NAME-ALREADY-EXISTS` code.
Wall-clock time and outbound notifications are boundary collaborators
resolved from the dependency scope.
"""

from .domain import (
    Base,
    Event,
    EventNameTaken,
    Events,
    Notifier,
    RecordingNotifier,
    User,
    Users,
    WebhookNotifier,
)
from .service import create_app

__all__ = (
    'Base',
    'Event',
    'EventNameTaken',
    'Events',
    'Notifier',
    'RecordingNotifier',
    'User',
    'Users',
    'WebhookNotifier',
    'create_app',
)

"""
User model definitions.

Owners and requesters live in separate collections keyed by the user uid.
``mongoUserId`` links an account to its record in the external identity
service; once set it is never cleared.
"""

from typing import Literal

Role = Literal["owner", "requester"]

ROLE_COLLECTIONS = {"owner": "owners", "requester": "requesters"}

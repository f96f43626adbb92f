from typing import List
from fastapi import Depends

from hivcare.core.permissions import Actor, require_permissions
from hivcare.services.momo import MomoClient


def actor_with_permissions(required_permissions: List[str]):
    """Dependency returning the authenticated Actor once permissions pass"""
    checker = require_permissions(required_permissions)

    def actor_dependency(user_payload=Depends(checker)) -> Actor:
        return Actor.from_payload(user_payload)

    return actor_dependency


def get_payment_provider() -> MomoClient:
    """Payment gateway client, overridable in tests"""
    return MomoClient()

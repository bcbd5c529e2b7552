import json
import logging

from pywebpush import WebPushException, webpush

from ayah_reels.core.config import settings
from ayah_reels.core.store import KeyedStore, build_store
from ayah_reels.models.schemas import PushSubscription

logger = logging.getLogger(__name__)

COMPLETED_PAYLOAD = {
    "title": "Video Generation Complete!",
    "body": "Your Quran video is ready.",
    "icon": "/icon.png",
}


class PushNotifier:
    def __init__(self, store: KeyedStore | None = None) -> None:
        self.store = store or build_store(settings.subscription_store_path)

    def subscribe(self, request_id: str, subscription: PushSubscription) -> bool:
        self.store.put(request_id, subscription.model_dump(mode="json"))
        return True

    def has_subscription(self, request_id: str) -> bool:
        return self.store.get(request_id) is not None

    def forget(self, request_id: str) -> None:
        self.store.pop(request_id)

    def notify(self, request_id: str, payload: dict | None = None) -> bool:
        subscription = self.store.get(request_id)
        if subscription is None:
            return False
        try:
            if not settings.vapid_private_key:
                logger.info("VAPID key not configured; skipping notification for %s", request_id)
                return False
            webpush(
                subscription_info=subscription,
                data=json.dumps(payload or COMPLETED_PAYLOAD),
                vapid_private_key=settings.vapid_private_key,
                vapid_claims={"sub": settings.vapid_email},
            )
        except WebPushException as exc:
            logger.error("Error sending notification for %s: %s", request_id, exc)
            return False
        finally:
            self.store.pop(request_id)
        logger.info("Sent completion notification for %s", request_id)
        return True

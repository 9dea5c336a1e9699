"""Pub/Sub package - channel subscriptions."""

from .subscription import Subscription, SubscriptionThread

__all__ = ['Subscription', 'SubscriptionThread']

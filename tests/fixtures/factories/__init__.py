"""
Test Data Factories

Factory classes for generating realistic test data across the mail models
using Factory Boy and Faker.

Usage:
    from tests.fixtures.factories import UserFactory, SubscriberFactory

    user = UserFactory()
    subscribers = SubscriberFactory.create_batch(3, user_id=user.id)
"""

from .base import BaseFactory, FactoryTraits
from .user_factory import BoundariesFactory, RoleFactory, UserFactory, DEFAULT_PASSWORD
from .subscriber_factory import SegmentFactory, SubscriberFactory
from .campaign_factory import CampaignFactory, CampaignScheduleFactory, SesKeysFactory, TemplateFactory

__all__ = [
    'BaseFactory',
    'FactoryTraits',
    'BoundariesFactory',
    'RoleFactory',
    'UserFactory',
    'DEFAULT_PASSWORD',
    'SegmentFactory',
    'SubscriberFactory',
    'TemplateFactory',
    'CampaignFactory',
    'CampaignScheduleFactory',
    'SesKeysFactory',
]

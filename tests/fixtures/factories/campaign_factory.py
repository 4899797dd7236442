"""
Template, Campaign and SES keys factories

Templates only carry their database columns; tests that need the HTML part
put it in the fake bucket themselves.
"""

from datetime import timedelta

import factory

from mail_database import Campaign, CampaignSchedule, SesKeys, Template
from .base import BaseFactory, fake
from .user_factory import UserFactory
from utils.datetime_utils import utc_now


class TemplateFactory(BaseFactory):
    class Meta:
        model = Template

    user_id = factory.LazyFunction(lambda: UserFactory().id)
    name = factory.Sequence(lambda n: f'Template {n}')
    subject_part = factory.LazyFunction(lambda: f'{fake.catch_phrase()} {{{{ name }}}}')
    text_part = 'Hello {{ name }}, unsubscribe at {{ unsubscribe_url }}'


class CampaignFactory(BaseFactory):
    """Draft campaigns on a template owned by the same user"""

    class Meta:
        model = Campaign

    user_id = factory.LazyFunction(lambda: UserFactory().id)
    name = factory.Sequence(lambda n: f'Campaign {n}')
    template = factory.SubFactory(TemplateFactory, user_id=factory.SelfAttribute('..user_id'))
    status = Campaign.STATUS_DRAFT

    class Params:
        sending = factory.Trait(status=Campaign.STATUS_SENDING)
        scheduled = factory.Trait(status=Campaign.STATUS_SCHEDULED)


class CampaignScheduleFactory(BaseFactory):
    class Meta:
        model = CampaignSchedule

    campaign = factory.SubFactory(CampaignFactory, status=Campaign.STATUS_SCHEDULED)
    user_id = factory.SelfAttribute('campaign.user_id')
    scheduled_at = factory.LazyFunction(lambda: utc_now() - timedelta(minutes=5))
    source = 'news@example.com'
    segment_ids = factory.LazyFunction(list)
    template_data = factory.LazyFunction(dict)


class SesKeysFactory(BaseFactory):
    class Meta:
        model = SesKeys

    user_id = factory.LazyFunction(lambda: UserFactory().id)
    access_key = factory.LazyFunction(lambda: 'AKIA' + fake.bothify('################').upper())
    secret_key = factory.LazyFunction(lambda: fake.sha1())
    region = 'eu-west-1'

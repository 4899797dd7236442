"""Tests for CampaignService start, schedule and CRUD rules"""

from datetime import timedelta

import pytest
from unittest.mock import Mock, call

from mail_database import Campaign, SesKeys
from services.boundaries_service import LimitExceededError, BoundaryCheckError
from services.campaign_params import CampaignerTopicParams
from services.campaign_service import (
    CampaignService,
    CampaignDuplicateError,
    CampaignNotFoundError,
    CampaignStateError,
    CampaignValidationError,
)
from services.queue_publisher import PublishError
from services.segment_service import SegmentNotFoundError
from services.ses_service import SesKeysNotFoundError
from services.template_service import TemplateNotFoundError, HTMLPartNotFoundError
from utils.datetime_utils import utc_now


def make_campaign(status=Campaign.STATUS_DRAFT, campaign_id=5):
    campaign = Campaign(name='Launch', status=status, template_id=3)
    campaign.id = campaign_id
    campaign.user_id = 1
    return campaign


def make_user(schedule_enabled=True):
    user = Mock()
    user.id = 1
    user.uuid = 'user-uuid'
    user.boundaries = Mock(schedule_campaigns_enabled=schedule_enabled)
    return user


def apply_update(entity, **kwargs):
    for key, value in kwargs.items():
        setattr(entity, key, value)
    return entity


class TestCampaignService:

    @pytest.fixture
    def repos(self):
        campaign_repository = Mock()
        campaign_repository.get_by_name.return_value = None
        campaign_repository.get_for_user.return_value = make_campaign()
        campaign_repository.update.side_effect = apply_update
        segment_repository = Mock()
        segment_repository.get_by_ids.side_effect = lambda ids, user_id: [Mock(id=i) for i in ids]
        template_repository = Mock()
        return {
            'campaign': campaign_repository,
            'segment': segment_repository,
            'template': template_repository,
            'user': Mock(),
            'stats': Mock(),
        }

    @pytest.fixture
    def boundaries(self):
        service = Mock()
        service.campaigns_limit_exceeded.return_value = False
        return service

    @pytest.fixture
    def ses(self):
        service = Mock()
        service.get_keys.return_value = SesKeys(access_key='AKIA', secret_key='secret', region='eu-west-1')
        service.configuration_set_exists.return_value = True
        return service

    @pytest.fixture
    def publisher(self):
        publisher = Mock()
        publisher.publish.return_value = 'message-id'
        return publisher

    @pytest.fixture
    def service(self, repos, boundaries, ses, publisher):
        return CampaignService(
            campaign_repository=repos['campaign'],
            template_repository=repos['template'],
            segment_repository=repos['segment'],
            user_repository=repos['user'],
            stats_repository=repos['stats'],
            event_repositories={'opens': Mock(), 'clicks': Mock(), 'bounces': Mock(), 'complaints': Mock()},
            boundaries_service=boundaries,
            ses_service=ses,
            template_service=Mock(),
            queue_publisher=publisher,
            campaigner_queue='campaigner',
        )

    # Start

    def test_start_publishes_campaigner_message(self, service, repos, publisher):
        campaign = service.start_campaign(5, make_user(), [1, 2], 'news@example.com', {'promo': 'X1'})

        queue, params = publisher.publish.call_args.args
        assert queue == 'campaigner'
        assert isinstance(params, CampaignerTopicParams)
        assert params.campaign_id == 5
        assert params.user_uuid == 'user-uuid'
        assert params.segment_ids == [1, 2]
        assert params.template_data == {'promo': 'X1'}
        assert params.ses_keys.region == 'eu-west-1'
        assert params.configuration_set_exists is True

        assert campaign.status == Campaign.STATUS_SENDING
        assert campaign.event_id == params.event_id
        assert campaign.started_at is not None
        repos['campaign'].commit.assert_called_once()

    def test_start_checks_limit_before_anything_else(self, service, boundaries, ses, publisher):
        boundaries.campaigns_limit_exceeded.return_value = True

        with pytest.raises(LimitExceededError):
            service.start_campaign(5, make_user(), [1], 'news@example.com')
        ses.get_keys.assert_not_called()
        publisher.publish.assert_not_called()

    def test_start_fails_closed_when_limit_cannot_be_checked(self, service, boundaries, publisher):
        boundaries.campaigns_limit_exceeded.side_effect = BoundaryCheckError("get total campaigns")

        with pytest.raises(BoundaryCheckError):
            service.start_campaign(5, make_user(), [1], 'news@example.com')
        publisher.publish.assert_not_called()

    def test_start_without_ses_keys(self, service, ses, publisher):
        ses.get_keys.side_effect = SesKeysNotFoundError("no keys")

        with pytest.raises(SesKeysNotFoundError):
            service.start_campaign(5, make_user(), [1], 'news@example.com')
        publisher.publish.assert_not_called()

    def test_start_campaign_not_found(self, service, repos):
        repos['campaign'].get_for_user.return_value = None

        with pytest.raises(CampaignNotFoundError):
            service.start_campaign(5, make_user(), [1], 'news@example.com')

    @pytest.mark.parametrize('status', [Campaign.STATUS_SENDING, Campaign.STATUS_SENT])
    def test_start_rejects_started_campaigns(self, service, repos, publisher, status):
        repos['campaign'].get_for_user.return_value = make_campaign(status=status)

        with pytest.raises(CampaignStateError):
            service.start_campaign(5, make_user(), [1], 'news@example.com')
        publisher.publish.assert_not_called()

    def test_start_requires_segments(self, service, publisher):
        with pytest.raises(SegmentNotFoundError):
            service.start_campaign(5, make_user(), [], 'news@example.com')
        publisher.publish.assert_not_called()

    def test_start_rejects_unknown_segment(self, service, repos, publisher):
        repos['segment'].get_by_ids.side_effect = lambda ids, user_id: [Mock(id=1)]

        with pytest.raises(SegmentNotFoundError):
            service.start_campaign(5, make_user(), [1, 99], 'news@example.com')
        publisher.publish.assert_not_called()

    def test_start_requires_readable_template(self, service, publisher):
        service.template_service.parse_template.side_effect = HTMLPartNotFoundError('templates/1/3')

        with pytest.raises(HTMLPartNotFoundError):
            service.start_campaign(5, make_user(), [1], 'news@example.com')
        publisher.publish.assert_not_called()

    def test_start_publish_failure_leaves_campaign_draft(self, service, repos, publisher):
        campaign = make_campaign()
        repos['campaign'].get_for_user.return_value = campaign
        publisher.publish.side_effect = PublishError("broker down")

        with pytest.raises(PublishError):
            service.start_campaign(5, make_user(), [1], 'news@example.com')
        assert campaign.status == Campaign.STATUS_DRAFT
        repos['campaign'].commit.assert_not_called()

    # Schedule

    def test_schedule_requires_plan_flag(self, service):
        with pytest.raises(LimitExceededError):
            service.schedule_campaign(5, make_user(schedule_enabled=False), utc_now() + timedelta(hours=1),
                                      [1], 'news@example.com')

    def test_schedule_requires_future_time(self, service):
        with pytest.raises(CampaignValidationError):
            service.schedule_campaign(5, make_user(), utc_now() - timedelta(minutes=1), [1], 'news@example.com')

    def test_schedule_saves_and_marks_scheduled(self, service, repos):
        when = utc_now() + timedelta(hours=2)

        campaign = service.schedule_campaign(5, make_user(), when, [1], 'news@example.com', {'a': 1})

        repos['campaign'].save_schedule.assert_called_once_with(
            campaign, scheduled_at=when, source='news@example.com', segment_ids=[1], template_data={'a': 1})
        assert campaign.status == Campaign.STATUS_SCHEDULED

    def test_unschedule_requires_scheduled_campaign(self, service):
        with pytest.raises(CampaignStateError):
            service.unschedule_campaign(5, 1)

    def test_unschedule_returns_to_draft(self, service, repos):
        repos['campaign'].get_for_user.return_value = make_campaign(status=Campaign.STATUS_SCHEDULED)

        campaign = service.unschedule_campaign(5, 1)

        repos['campaign'].delete_schedule.assert_called_once_with(campaign)
        assert campaign.status == Campaign.STATUS_DRAFT

    def test_start_due_schedules_logs_failures_and_continues(self, service, repos, ses):
        ok_campaign, bad_campaign = make_campaign(Campaign.STATUS_SCHEDULED, 5), make_campaign(Campaign.STATUS_SCHEDULED, 6)
        schedules = [
            Mock(campaign=bad_campaign, campaign_id=6, user_id=1, segment_ids=[1], source='a@b.co', template_data={}),
            Mock(campaign=ok_campaign, campaign_id=5, user_id=1, segment_ids=[1], source='a@b.co', template_data={}),
        ]
        repos['campaign'].due_schedules.return_value = schedules
        repos['campaign'].get_for_user.side_effect = lambda cid, uid: {5: ok_campaign, 6: bad_campaign}[cid]
        repos['user'].get_by_id.return_value = make_user()
        ses.get_keys.side_effect = [SesKeysNotFoundError("no keys"), ses.get_keys.return_value]

        stats = service.start_due_schedules()

        assert stats == {'started': 1, 'failed': 1}
        repos['campaign'].log_failed_campaign.assert_called_once()
        assert repos['campaign'].log_failed_campaign.call_args.args[0] is bad_campaign
        assert ok_campaign.status == Campaign.STATUS_SENDING

    # CRUD

    def test_create_campaign_duplicate_name(self, service, repos):
        repos['campaign'].get_by_name.return_value = make_campaign()

        with pytest.raises(CampaignDuplicateError):
            service.create_campaign(1, 'Launch', 3)

    def test_create_campaign_requires_template(self, service, repos):
        repos['template'].get_for_user.return_value = None

        with pytest.raises(TemplateNotFoundError):
            service.create_campaign(1, 'Launch', 3)
        repos['campaign'].create.assert_not_called()

    def test_update_only_drafts(self, service, repos):
        repos['campaign'].get_for_user.return_value = make_campaign(status=Campaign.STATUS_SENT)

        with pytest.raises(CampaignStateError):
            service.update_campaign(5, 1, 'Launch', 3)

    def test_delete_drops_schedule_and_soft_deletes(self, service, repos):
        campaign = make_campaign(status=Campaign.STATUS_SCHEDULED)
        repos['campaign'].get_for_user.return_value = campaign

        service.delete_campaign(5, 1)

        assert repos['campaign'].method_calls[-3:] == [
            call.delete_schedule(campaign), call.soft_delete(campaign), call.commit()
        ]

    def test_list_events_checks_ownership(self, service, repos):
        repos['campaign'].get_for_user.return_value = None

        with pytest.raises(CampaignNotFoundError):
            service.list_events('opens', 5, 1, Mock())

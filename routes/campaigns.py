"""Campaign API endpoints.

CRUD, statistics and event listings, plus starting and scheduling a
campaign send.
"""

from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user

from services.boundaries_service import LimitExceededError
from services.campaign_service import (
    CampaignNotFoundError,
    CampaignDuplicateError,
    CampaignStateError,
    CampaignValidationError,
    START_ERRORS as CAMPAIGN_START_ERRORS
)
from services.segment_service import SegmentNotFoundError
from services.ses_service import SesKeysNotFoundError
from services.template_service import (
    TemplateNotFoundError,
    TemplatePartParseError,
    HTMLPartNotFoundError,
    HTMLPartInvalidStateError
)
from routes.api_utils import json_body, message, invalid_parameters, pagination_from_request
from utils.datetime_utils import parse_utc_iso
from utils.validators import validate_name, clean_str, parse_id_list

campaigns_bp = Blueprint('campaigns', __name__, url_prefix='/api/campaigns')

EVENT_KINDS = ('opens', 'clicks', 'bounces', 'complaints')


def _campaign_params(data):
    errors = {}
    name = validate_name(data.get('name'), 'name', errors)
    template_id = data.get('template_id')
    if isinstance(template_id, bool) or not isinstance(template_id, int):
        errors['template_id'] = 'Must be an integer'
    return errors, name, template_id


def _send_params(data):
    """segment_ids, source and template_data shared by start and schedule"""
    errors = {}
    segment_ids = parse_id_list(data.get('segment_ids'), 'segment_ids', errors)
    if not segment_ids and 'segment_ids' not in errors:
        errors['segment_ids'] = 'At least one segment is required'
    source = clean_str(data.get('source'))
    if not source:
        errors['source'] = 'This field is required'
    template_data = data.get('template_data')
    if template_data is None:
        template_data = {}
    if not isinstance(template_data, dict):
        errors['template_data'] = 'Must be an object'
    return errors, segment_ids, source, template_data


def _start_error_response(e):
    """Map a failed start or schedule to a response"""
    if isinstance(e, CampaignNotFoundError):
        return message("Campaign not found", 404)
    if isinstance(e, LimitExceededError):
        return message(str(e), 403)
    if isinstance(e, SesKeysNotFoundError):
        return message("Amazon Ses keys are not set.", 400)
    if isinstance(e, CampaignStateError):
        return message(str(e), 400)
    if isinstance(e, CampaignValidationError):
        return invalid_parameters({'scheduled_at': str(e)})
    if isinstance(e, SegmentNotFoundError):
        return message("Segments not found.", 404)
    if isinstance(e, TemplateNotFoundError):
        return message("Template not found.", 404)
    if isinstance(e, HTMLPartNotFoundError):
        return message("HTML part not found.", 404)
    if isinstance(e, HTMLPartInvalidStateError):
        return message("The state of the HTML part is invalid.", 404)
    if isinstance(e, TemplatePartParseError):
        return message(f"Unable to start campaign, failed to parse {e.part}", 400)
    current_app.logger.error(f"Error starting campaign: {e}", exc_info=True)
    return message("Unable to start campaign, please try again.", 500)


START_ERRORS = CAMPAIGN_START_ERRORS + (CampaignValidationError,)


@campaigns_bp.route('', methods=['GET'])
@login_required
def list_campaigns():
    campaign_service = current_app.services.get('campaign')
    page = campaign_service.list_campaigns(
        current_user.id, pagination_from_request(), name=request.args.get('name')
    )
    return jsonify(page.to_dict()), 200


@campaigns_bp.route('/<int:campaign_id>', methods=['GET'])
@login_required
def get_campaign(campaign_id):
    try:
        campaign = current_app.services.get('campaign').get_campaign(campaign_id, current_user.id)
    except CampaignNotFoundError:
        return message("Campaign not found", 404)
    return jsonify(campaign.to_dict()), 200


@campaigns_bp.route('', methods=['POST'])
@login_required
def create_campaign():
    data = json_body()
    if data is None:
        return invalid_parameters()

    errors, name, template_id = _campaign_params(data)
    if errors:
        return invalid_parameters(errors)

    try:
        campaign = current_app.services.get('campaign').create_campaign(current_user.id, name, template_id)
    except CampaignDuplicateError:
        return message("Campaign with that name already exists", 400)
    except TemplateNotFoundError:
        return message("Template not found.", 404)
    except Exception as e:
        current_app.logger.error(f"Error creating campaign: {e}", exc_info=True)
        return message("Unable to create campaign, please try again.", 500)

    return jsonify(campaign.to_dict()), 201


@campaigns_bp.route('/<int:campaign_id>', methods=['PUT'])
@login_required
def update_campaign(campaign_id):
    data = json_body()
    if data is None:
        return invalid_parameters()

    errors, name, template_id = _campaign_params(data)
    if errors:
        return invalid_parameters(errors)

    try:
        campaign = current_app.services.get('campaign').update_campaign(
            campaign_id, current_user.id, name, template_id
        )
    except CampaignNotFoundError:
        return message("Campaign not found", 404)
    except CampaignStateError as e:
        return message(str(e), 400)
    except CampaignDuplicateError:
        return message("Campaign with that name already exists", 400)
    except TemplateNotFoundError:
        return message("Template not found.", 404)
    except Exception as e:
        current_app.logger.error(f"Error updating campaign {campaign_id}: {e}", exc_info=True)
        return message("Unable to update campaign, please try again.", 500)

    return jsonify(campaign.to_dict()), 200


@campaigns_bp.route('/<int:campaign_id>', methods=['DELETE'])
@login_required
def delete_campaign(campaign_id):
    try:
        current_app.services.get('campaign').delete_campaign(campaign_id, current_user.id)
    except CampaignNotFoundError:
        return message("Campaign not found", 404)
    except Exception as e:
        current_app.logger.error(f"Error deleting campaign {campaign_id}: {e}", exc_info=True)
        return message("Unable to delete campaign, please try again.", 500)
    return '', 204


@campaigns_bp.route('/<int:campaign_id>/stats', methods=['GET'])
@login_required
def campaign_stats(campaign_id):
    try:
        stats = current_app.services.get('campaign').get_stats(campaign_id, current_user.id)
    except CampaignNotFoundError:
        return message("Campaign not found", 404)
    return jsonify(stats), 200


@campaigns_bp.route('/<int:campaign_id>/<kind>', methods=['GET'])
@login_required
def campaign_events(campaign_id, kind):
    """List opens, clicks, bounces or complaints, newest first"""
    if kind not in EVENT_KINDS:
        return message("Not found", 404)
    try:
        page = current_app.services.get('campaign').list_events(
            kind, campaign_id, current_user.id, pagination_from_request()
        )
    except CampaignNotFoundError:
        return message("Campaign not found", 404)
    return jsonify(page.to_dict()), 200


@campaigns_bp.route('/<int:campaign_id>/start', methods=['POST'])
@login_required
def start_campaign(campaign_id):
    """Start sending a campaign.

    Expected JSON payload:
    {
        "segment_ids": [1, 2],
        "source": "Jane <jane@example.com>",
        "template_data": {"company": "Acme"}
    }
    """
    data = json_body()
    if data is None:
        return invalid_parameters()

    errors, segment_ids, source, template_data = _send_params(data)
    if errors:
        return invalid_parameters(errors)

    try:
        current_app.services.get('campaign').start_campaign(
            campaign_id, current_user, segment_ids, source, template_data
        )
    except START_ERRORS as e:
        return _start_error_response(e)

    return message("The campaign has started. You can track the progress in the campaign details page.", 200)


@campaigns_bp.route('/<int:campaign_id>/schedule', methods=['PUT'])
@login_required
def schedule_campaign(campaign_id):
    data = json_body()
    if data is None:
        return invalid_parameters()

    errors, segment_ids, source, template_data = _send_params(data)
    try:
        scheduled_at = parse_utc_iso(clean_str(data.get('scheduled_at')))
    except (TypeError, ValueError):
        scheduled_at = None
        errors['scheduled_at'] = 'Must be an ISO 8601 date time'
    if errors:
        return invalid_parameters(errors)

    try:
        campaign = current_app.services.get('campaign').schedule_campaign(
            campaign_id, current_user, scheduled_at, segment_ids, source, template_data
        )
    except START_ERRORS as e:
        return _start_error_response(e)

    return jsonify(campaign.to_dict()), 200


@campaigns_bp.route('/<int:campaign_id>/schedule', methods=['DELETE'])
@login_required
def unschedule_campaign(campaign_id):
    try:
        current_app.services.get('campaign').unschedule_campaign(campaign_id, current_user.id)
    except CampaignNotFoundError:
        return message("Campaign not found", 404)
    except CampaignStateError as e:
        return message(str(e), 400)
    return '', 204

"""SNS delivery endpoint for SES event notifications.

Public: authenticity comes from the SNS message signature, not a session.
"""

from flask import Blueprint, request, current_app

from services.delivery_event_service import WebhookRejectedError, HookOutcome

hooks_bp = Blueprint('hooks', __name__, url_prefix='/api/hooks')


@hooks_bp.route('/<user_uuid>', methods=['POST'])
def handle_notification(user_uuid):
    """Accept one SNS delivery; 200 acknowledges it, 400 makes SNS retry or stop."""
    delivery_events = current_app.services.get('delivery_event')
    try:
        outcome = delivery_events.handle(user_uuid, request.get_data(), ip_address=request.remote_addr)
    except WebhookRejectedError as e:
        current_app.logger.warning(f"SNS notification rejected for {user_uuid}: {e.reason}")
        return '', 400

    # The subscription is confirmed out of band; the request itself is not a notification
    if outcome == HookOutcome.SUBSCRIPTION_CONFIRMATION:
        return '', 400
    return '', 200

"""Public unsubscribe links embedded in campaign emails."""

from flask import Blueprint, render_template, request, current_app

from logging_config import security_logger
from services.subscriber_service import SubscriberNotFoundError, InvalidUnsubscribeTokenError

unsubscribe_bp = Blueprint('unsubscribe', __name__, url_prefix='/api')


def _link_params(source):
    return source.get('email', ''), source.get('uuid', ''), source.get('t', '')


@unsubscribe_bp.route('/unsubscribe', methods=['GET'])
def unsubscribe_page():
    email, user_uuid, token = _link_params(request.args)
    if not (email and user_uuid and token):
        return render_template('unsubscribe.html', state='invalid'), 400
    return render_template('unsubscribe.html', state='confirm', email=email, uuid=user_uuid, token=token)


@unsubscribe_bp.route('/unsubscribe', methods=['POST'])
def unsubscribe():
    email, user_uuid, token = _link_params(request.form)
    subscriber_service = current_app.services.get('subscriber')
    try:
        subscriber_service.unsubscribe(email, user_uuid, token)
    except InvalidUnsubscribeTokenError:
        security_logger.log_unsubscribe_rejected(user_uuid, email, request.remote_addr)
        return render_template('unsubscribe.html', state='invalid'), 400
    except SubscriberNotFoundError:
        return render_template('unsubscribe.html', state='invalid'), 404
    except Exception as e:
        current_app.logger.error(f"Error unsubscribing {user_uuid}: {e}", exc_info=True)
        return render_template('unsubscribe.html', state='error'), 500

    return render_template('unsubscribe.html', state='done', email=email), 200
